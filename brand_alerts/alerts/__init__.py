"""Alert evaluation and lifecycle for brand metric thresholds.

Components:
- Alert: Dataclass mapping to the alerts table
- AlertEvaluationResult / AlertStatistics: evaluation and reporting payloads
- AlertConfig: Pydantic settings for suppression, retention and the job queue
- evaluate / calculate_severity: Stateless comparison and severity bands
- SuppressionFilter: Drops near-duplicate alerts raised within the window
- AlertRepository: CRUD, lifecycle and retention queries
- AlertService: Orchestrator for evaluation, suppression, persistence and queueing

The queue consumer lives in ``brand_alerts.alerts.worker`` (AlertWorker).
"""

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.evaluator import (
    SEVERITY_BANDS,
    calculate_severity,
    compare_values,
    evaluate,
    extract_metric_value,
)
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.alerts.schemas import (
    VALID_SEVERITIES,
    Alert,
    AlertEvaluationResult,
    AlertSeverity,
    AlertStatistics,
)
from brand_alerts.alerts.service import AlertService
from brand_alerts.alerts.suppression import SuppressionFilter

__all__ = [
    "Alert",
    "AlertConfig",
    "AlertEvaluationResult",
    "AlertRepository",
    "AlertService",
    "AlertSeverity",
    "AlertStatistics",
    "SEVERITY_BANDS",
    "SuppressionFilter",
    "VALID_SEVERITIES",
    "calculate_severity",
    "compare_values",
    "evaluate",
    "extract_metric_value",
]
