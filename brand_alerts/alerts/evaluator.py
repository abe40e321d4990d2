"""Stateless threshold evaluation.

Pure functions that compare one snapshot against one threshold, classify
severity and render alert text. No I/O, no state: suppression,
persistence and queueing live in AlertService.
"""

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.schemas import Alert, AlertEvaluationResult
from brand_alerts.errors import UnknownMetricType, UnknownOperator
from brand_alerts.thresholds.schemas import (
    VALID_METRIC_TYPES,
    AlertThreshold,
    MetricSnapshot,
)

# (medium, high, critical) lower bounds on the percentage gap
SEVERITY_BANDS: dict[str, tuple[float, float, float]] = {
    "overall_score": (5.0, 15.0, 30.0),
    "ranking_position": (20.0, 50.0, 100.0),
    "mention_frequency": (15.0, 35.0, 60.0),
    "average_sentiment": (10.0, 25.0, 50.0),
    "citation_count": (20.0, 40.0, 70.0),
    "source_quality_score": (10.0, 20.0, 40.0),
}
DEFAULT_SEVERITY_BAND: tuple[float, float, float] = (10.0, 25.0, 50.0)

METRIC_DISPLAY_NAMES: dict[str, str] = {
    "overall_score": "Overall Visibility Score",
    "ranking_position": "Ranking Position",
    "mention_frequency": "Mention Frequency",
    "average_sentiment": "Average Sentiment",
    "citation_count": "Citation Count",
    "source_quality_score": "Source Quality Score",
}

OPERATOR_PHRASES: dict[str, str] = {
    ">": "exceeded",
    "<": "fallen below",
    ">=": "reached or exceeded",
    "<=": "reached or fallen below",
    "=": "matched",
}


def extract_metric_value(snapshot: MetricSnapshot, metric_type: str) -> float:
    """Read the metric a threshold watches from a snapshot.

    A metric the snapshot did not capture reads as 0.

    Raises:
        UnknownMetricType: metric_type is not one of the six tracked metrics.
    """
    if metric_type not in VALID_METRIC_TYPES:
        raise UnknownMetricType(metric_type)
    value = getattr(snapshot, metric_type)
    return float(value) if value is not None else 0.0


def compare_values(
    current: float,
    threshold: float,
    operator: str,
    equality_tolerance: float = 0.01,
) -> bool:
    """Apply a comparison operator.

    ``=`` matches when the values differ by less than ``equality_tolerance``.

    Raises:
        UnknownOperator: operator is not one of ``> < >= <= =``.
    """
    if operator == ">":
        return current > threshold
    if operator == "<":
        return current < threshold
    if operator == ">=":
        return current >= threshold
    if operator == "<=":
        return current <= threshold
    if operator == "=":
        return abs(current - threshold) < equality_tolerance
    raise UnknownOperator(operator)


def percentage_gap(current: float, threshold: float) -> float:
    """Relative distance from the threshold, in percent (100 for a 0 threshold)."""
    if threshold == 0:
        return 100.0
    return abs(current - threshold) / abs(threshold) * 100


def calculate_severity(metric_type: str, current: float, threshold: float) -> str:
    """Map the percentage gap through the metric's severity bands."""
    medium, high, critical = SEVERITY_BANDS.get(metric_type, DEFAULT_SEVERITY_BAND)
    gap = percentage_gap(current, threshold)

    if gap >= critical:
        return "critical"
    if gap >= high:
        return "high"
    if gap >= medium:
        return "medium"
    return "low"


def metric_display_name(metric_type: str) -> str:
    return METRIC_DISPLAY_NAMES.get(metric_type, metric_type)


def build_alert_title(severity: str, metric_type: str) -> str:
    return f"{severity.capitalize()} Alert: {metric_display_name(metric_type)} Threshold Exceeded"


def _fmt(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "N/A"


def build_alert_message(
    threshold: AlertThreshold,
    current_value: float,
    snapshot: MetricSnapshot,
) -> str:
    """Render the alert body: breach sentence plus a numeric context block."""
    phrase = OPERATOR_PHRASES.get(threshold.comparison_operator, "changed relative to")
    metric_name = metric_display_name(threshold.metric_type).lower()

    lines = [
        f"Your brand's {metric_name} has {phrase} the configured threshold.",
        "",
        f"Current Value: {current_value:.2f}",
        f"Threshold: {threshold.threshold_value:.2f}",
        f"Comparison: {threshold.comparison_operator}",
        "",
        "Additional Context:",
        f"- Overall Score: {_fmt(snapshot.overall_score)}",
        f"- Ranking Position: {_fmt(snapshot.ranking_position)}",
        f"- Mention Frequency: {_fmt(snapshot.mention_frequency)}",
        f"- Average Sentiment: {_fmt(snapshot.average_sentiment)}",
        f"- Citation Count: {_fmt(snapshot.citation_count)}",
    ]
    return "\n".join(lines) + "\n"


def build_alert(
    threshold: AlertThreshold,
    current_value: float,
    severity: str,
    snapshot: MetricSnapshot,
) -> Alert:
    """Construct the (unpersisted) Alert for a triggered evaluation."""
    return Alert(
        brand_id=threshold.brand_id,
        alert_threshold_id=threshold.id,
        severity=severity,
        title=build_alert_title(severity, threshold.metric_type),
        message=build_alert_message(threshold, current_value, snapshot),
        metric_type=threshold.metric_type,
        current_value=current_value,
        threshold_value=threshold.threshold_value,
    )


def evaluate(
    threshold: AlertThreshold,
    snapshot: MetricSnapshot,
    config: AlertConfig | None = None,
) -> AlertEvaluationResult:
    """Evaluate one threshold against one snapshot.

    Severity is always computed. The returned result never carries an
    alert; AlertService attaches one after suppression and persistence.

    Args:
        threshold: Threshold to evaluate.
        snapshot: Current brand metrics.
        config: Alert configuration (equality tolerance).

    Returns:
        AlertEvaluationResult.

    Raises:
        UnknownMetricType, UnknownOperator
    """
    tolerance = config.equality_tolerance if config is not None else 0.01

    current_value = extract_metric_value(snapshot, threshold.metric_type)
    triggered = compare_values(
        current_value,
        threshold.threshold_value,
        threshold.comparison_operator,
        tolerance,
    )
    severity = calculate_severity(
        threshold.metric_type, current_value, threshold.threshold_value,
    )
    return AlertEvaluationResult(
        triggered=triggered,
        threshold=threshold,
        current_value=current_value,
        severity=severity,
    )
