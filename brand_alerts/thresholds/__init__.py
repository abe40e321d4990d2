"""Alert threshold configuration and the metric snapshots they are evaluated against.

Components:
- AlertThreshold: Dataclass mapping to the alert_thresholds table
- MetricSnapshot: Point-in-time brand metrics produced by the monitoring service
- ThresholdRepository: CRUD with soft delete
- VALID_METRIC_TYPES / VALID_OPERATORS / VALID_CHANNELS: runtime validation sets
"""

from brand_alerts.thresholds.repository import ThresholdRepository
from brand_alerts.thresholds.schemas import (
    VALID_CHANNELS,
    VALID_METRIC_TYPES,
    VALID_OPERATORS,
    AlertThreshold,
    ChannelName,
    ComparisonOperator,
    MetricSnapshot,
    MetricType,
)

__all__ = [
    "AlertThreshold",
    "ChannelName",
    "ComparisonOperator",
    "MetricSnapshot",
    "MetricType",
    "ThresholdRepository",
    "VALID_CHANNELS",
    "VALID_METRIC_TYPES",
    "VALID_OPERATORS",
]
