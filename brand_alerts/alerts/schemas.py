"""Schema definitions for alert records.

``Alert`` maps 1:1 to the ``alerts`` table. An alert is created once by a
non-suppressed triggered evaluation; afterwards only acknowledge and
resolve mutate it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from brand_alerts.thresholds.schemas import AlertThreshold

AlertSeverity = Literal["low", "medium", "high", "critical"]

VALID_SEVERITIES: frozenset[str] = frozenset({"low", "medium", "high", "critical"})

# Synthetic alerts built to check a channel carry ids with this prefix and
# are never stored in the alerts table.
TEST_ALERT_ID_PREFIX = "test-"


def _parse_dt(value: Any) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


@dataclass
class Alert:
    """A persisted alert record from the alerts table.

    Attributes:
        id: UUID4 identifier.
        brand_id: Brand whose metric breached the threshold.
        alert_threshold_id: Threshold that fired (None once it is gone).
        severity: low, medium, high or critical.
        title: Short human-readable summary.
        message: Detailed description with numeric context.
        metric_type: Metric that breached.
        current_value: Observed value.
        threshold_value: Configured value at the time of evaluation.
        is_acknowledged: Whether a user has reviewed the alert.
        acknowledged_by: User who acknowledged.
        acknowledged_at: When it was acknowledged.
        resolved_at: When it was resolved (terminal).
        created_at: When the alert was generated.
    """

    brand_id: str
    severity: str
    title: str
    message: str
    metric_type: str
    current_value: float | None = None
    threshold_value: float | None = None
    alert_threshold_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )

    @property
    def is_test(self) -> bool:
        return self.id.startswith(TEST_ALERT_ID_PREFIX)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    @property
    def status(self) -> str:
        """Lifecycle state: created, acknowledged or resolved."""
        if self.resolved_at is not None:
            return "resolved"
        if self.is_acknowledged:
            return "acknowledged"
        return "created"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "alert_threshold_id": self.alert_threshold_id,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "metric_type": self.metric_type,
            "current_value": self.current_value,
            "threshold_value": self.threshold_value,
            "is_acknowledged": self.is_acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": (
                self.acknowledged_at.isoformat() if self.acknowledged_at else None
            ),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        """Create an Alert from a dictionary (inverse of ``to_dict``)."""
        created_at = _parse_dt(data.get("created_at")) or datetime.now(timezone.utc)
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            brand_id=data["brand_id"],
            alert_threshold_id=data.get("alert_threshold_id"),
            severity=data["severity"],
            title=data["title"],
            message=data["message"],
            metric_type=data["metric_type"],
            current_value=data.get("current_value"),
            threshold_value=data.get("threshold_value"),
            is_acknowledged=data.get("is_acknowledged", False),
            acknowledged_by=data.get("acknowledged_by"),
            acknowledged_at=_parse_dt(data.get("acknowledged_at")),
            resolved_at=_parse_dt(data.get("resolved_at")),
            created_at=created_at,
        )


@dataclass
class AlertEvaluationResult:
    """Outcome of evaluating one threshold against one snapshot.

    Ephemeral, never persisted. ``severity`` is computed even when the
    threshold did not trigger. ``alert`` is set only when the evaluation
    triggered and was not suppressed. ``error`` is set when batch
    evaluation skipped this threshold because it was invalid.
    """

    triggered: bool
    threshold: AlertThreshold
    current_value: float
    severity: str
    alert: Alert | None = None
    suppressed: bool = False
    error: str | None = None


@dataclass
class AlertStatistics:
    """Aggregate alert counts for one brand."""

    total: int = 0
    by_severity: dict[str, int] = field(
        default_factory=lambda: {"low": 0, "medium": 0, "high": 0, "critical": 0}
    )
    acknowledged: int = 0
    resolved: int = 0
    active: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_severity": dict(self.by_severity),
            "acknowledged": self.acknowledged,
            "resolved": self.resolved,
            "active": self.active,
        }
