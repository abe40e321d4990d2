"""Schema definitions for alert thresholds and metric snapshots.

``AlertThreshold`` maps 1:1 to the ``alert_thresholds`` table. Metric type
and operator are not validated on construction; the repository validates
on create and update, and the evaluator raises UnknownMetricType /
UnknownOperator for stored rows it cannot handle.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

MetricType = Literal[
    "overall_score",
    "ranking_position",
    "mention_frequency",
    "average_sentiment",
    "citation_count",
    "source_quality_score",
]

VALID_METRIC_TYPES: frozenset[str] = frozenset({
    "overall_score",
    "ranking_position",
    "mention_frequency",
    "average_sentiment",
    "citation_count",
    "source_quality_score",
})

ComparisonOperator = Literal[">", "<", ">=", "<=", "="]

VALID_OPERATORS: frozenset[str] = frozenset({">", "<", ">=", "<=", "="})

ChannelName = Literal["email", "sms", "webhook", "in_app"]

VALID_CHANNELS: frozenset[str] = frozenset({"email", "sms", "webhook", "in_app"})


def _dedupe(channels: Any) -> tuple[str, ...]:
    """Keep first occurrence of each channel, preserving order."""
    return tuple(dict.fromkeys(channels or ()))


@dataclass
class AlertThreshold:
    """A recipient-configured rule that decides when an alert fires.

    Attributes:
        id: UUID4 identifier.
        brand_id: Brand whose metrics are watched.
        user_id: Recipient of the resulting notifications.
        metric_type: Snapshot field to compare.
        threshold_value: Value compared against.
        comparison_operator: One of ``>``, ``<``, ``>=``, ``<=``, ``=``.
        is_active: False once soft-deleted.
        notification_channels: Ordered set of channel names.
    """

    brand_id: str
    user_id: str
    metric_type: str
    threshold_value: float
    comparison_operator: str
    notification_channels: tuple[str, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_active: bool = True
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        self.threshold_value = float(self.threshold_value)
        self.notification_channels = _dedupe(self.notification_channels)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "user_id": self.user_id,
            "metric_type": self.metric_type,
            "threshold_value": self.threshold_value,
            "comparison_operator": self.comparison_operator,
            "is_active": self.is_active,
            "notification_channels": list(self.notification_channels),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class MetricSnapshot:
    """Brand visibility metrics captured at one point in time.

    Produced by the monitoring service; any field may be missing when the
    underlying data source returned nothing.
    """

    brand_id: str
    overall_score: float | None = None
    ranking_position: float | None = None
    mention_frequency: float | None = None
    average_sentiment: float | None = None
    citation_count: float | None = None
    source_quality_score: float | None = None
    captured_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricSnapshot":
        """Build a snapshot from a metrics payload, ignoring unknown keys."""
        captured_at = data.get("captured_at")
        if isinstance(captured_at, str):
            captured_at = datetime.fromisoformat(captured_at)
        elif captured_at is None:
            captured_at = datetime.now(timezone.utc)

        values = {
            name: float(data[name])
            for name in VALID_METRIC_TYPES
            if data.get(name) is not None
        }
        return cls(brand_id=data["brand_id"], captured_at=captured_at, **values)
