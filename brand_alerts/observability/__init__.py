"""Observability layer - logging, metrics, and tracing."""

from brand_alerts.observability.logging import setup_logging
from brand_alerts.observability.metrics import MetricsCollector, get_metrics
from brand_alerts.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "MetricsCollector",
    "get_metrics",
    "get_tracer",
    "setup_logging",
    "setup_tracing",
]
