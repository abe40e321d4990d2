"""
structlog setup shared by the CLI and the alert worker.

Every record carries the service name and, when a span is active, its
trace and span ids. Production renders JSON lines; other environments
render colored console output. Modules that log through
``logging.getLogger(__name__)`` pass through the same stdlib handler.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from brand_alerts.config.settings import Settings, get_settings
from brand_alerts.observability.tracing import add_trace_context

# SMTP and HTTP clients log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosmtplib", "asyncpg")


def service_name_processor(service_name: str) -> Processor:
    """Build a processor stamping ``service`` on every event."""

    def add_service_name(
        logger_: Any, method: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service_name


def build_processors(settings: Settings) -> list[Processor]:
    """Processor chain for ``settings.environment``, renderer last."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        service_name_processor(settings.otel_service_name),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root handler from settings.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Alert job completed", alert_id="123", severity="high")
    """
    settings = get_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
