"""
Prometheus metrics for the alerting pipeline.

Defines and exposes metrics for:
- Threshold evaluations, created and suppressed alerts
- Alert job outcomes, retries and latency
- Notification deliveries by channel and status
- Queue depth

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from brand_alerts.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for alert evaluation and delivery.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_alert_created("high")
        metrics.record_delivery("email", "sent")
    """

    def __init__(self):
        self.thresholds_evaluated = Counter(
            "brand_alerts_thresholds_evaluated_total",
            "Threshold evaluations performed",
            ["metric_type", "outcome"],  # outcome: triggered, clear, error
        )

        self.alerts_created = Counter(
            "brand_alerts_alerts_created_total",
            "Alerts persisted after suppression",
            ["severity"],
        )

        self.alerts_suppressed = Counter(
            "brand_alerts_alerts_suppressed_total",
            "Triggered evaluations dropped as recent duplicates",
            ["metric_type"],
        )

        self.jobs_processed = Counter(
            "brand_alerts_jobs_processed_total",
            "Alert jobs finished by outcome",
            ["outcome"],  # completed, retried, failed
        )

        self.job_latency = Histogram(
            "brand_alerts_job_latency_seconds",
            "Time to process one alert job",
            ["severity"],
            buckets=LATENCY_BUCKETS,
        )

        self.deliveries = Counter(
            "brand_alerts_deliveries_total",
            "Notification delivery attempts",
            ["channel", "status"],
        )

        self.queue_depth = Gauge(
            "brand_alerts_queue_depth",
            "Jobs waiting in the alert queue",
            ["queue"],
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start the Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")

    def record_evaluation(self, metric_type: str, outcome: str) -> None:
        self.thresholds_evaluated.labels(metric_type=metric_type, outcome=outcome).inc()

    def record_alert_created(self, severity: str) -> None:
        self.alerts_created.labels(severity=severity).inc()

    def record_alert_suppressed(self, metric_type: str) -> None:
        self.alerts_suppressed.labels(metric_type=metric_type).inc()

    def record_job(self, outcome: str, severity: str | None = None, latency: float | None = None) -> None:
        """
        Record an alert job outcome.

        Args:
            outcome: completed, retried, failed or unacknowledged
            severity: Alert severity (for the latency histogram)
            latency: Processing time in seconds
        """
        self.jobs_processed.labels(outcome=outcome).inc()
        if latency is not None and severity is not None:
            self.job_latency.labels(severity=severity).observe(latency)

    def record_delivery(self, channel: str, status: str) -> None:
        self.deliveries.labels(channel=channel, status=status).inc()

    def set_queue_depth(self, queue: str, depth: int) -> None:
        self.queue_depth.labels(queue=queue).set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
