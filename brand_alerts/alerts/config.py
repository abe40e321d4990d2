"""Alert engine configuration.

Controls duplicate suppression, equality tolerance, retention, and the
alert job queue. All settings can be overridden via ``ALERTS_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from brand_alerts.queues.config import QueueConfig


class AlertConfig(BaseSettings):
    """Configuration for alert evaluation and processing."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Comparison
    equality_tolerance: float = Field(
        default=0.01,
        gt=0.0,
        description="Absolute difference under which '=' thresholds match",
    )

    # Suppression: drop near-identical alerts raised recently
    suppression_window_minutes: int = Field(
        default=60,
        ge=1,
        le=10_080,
        description="Look-back window for similar unresolved alerts",
    )
    suppression_tolerance_ratio: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Fraction of |threshold_value| within which alerts count as similar",
    )

    # Retention
    cleanup_days: int = Field(
        default=30,
        ge=1,
        description="Resolved alerts older than this are deleted by cleanup",
    )

    # Job queue
    queue_name: str = Field(
        default="alert_processing",
        description="Key prefix of the durable alert job queue",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per alert job before it is marked failed",
    )
    retry_base_delay_ms: int = Field(
        default=2000,
        ge=0,
        description="Backoff base; attempt n waits base * 2^(n-1) ms",
    )
    visibility_timeout_ms: int = Field(
        default=120_000,
        ge=1_000,
        description="Lease after which an unacknowledged job is reclaimed",
    )
    worker_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of concurrent job consumers per worker process",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Sleep between empty dequeue polls",
    )

    def queue_config(self) -> QueueConfig:
        """Queue settings derived from this configuration."""
        return QueueConfig(
            queue_name=self.queue_name,
            max_attempts=self.max_attempts,
            retry_base_delay_ms=self.retry_base_delay_ms,
            visibility_timeout_ms=self.visibility_timeout_ms,
        )
