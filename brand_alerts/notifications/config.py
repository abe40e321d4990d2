"""Notification delivery configuration.

All settings can be overridden via ``NOTIFICATIONS_*`` environment
variables. Channels whose provider settings are missing still work:
SMS falls back to a logged dry run, email fails its delivery row.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationConfig(BaseSettings):
    """Configuration for preference policy and channel senders."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Preference policy
    frequency_window_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="Rolling window for the per-user frequency cap",
    )
    default_frequency_limit: int = Field(
        default=10,
        ge=0,
        description="Frequency cap for lazily created preferences (0 = unlimited)",
    )

    # Email (SMTP)
    smtp_host: str = Field(default="localhost", description="SMTP server host")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=False, description="Implicit TLS (SMTPS)")
    smtp_start_tls: bool | None = Field(
        default=None,
        description="STARTTLS: True forces, False disables, None uses it when offered",
    )
    smtp_timeout_seconds: float = Field(default=10.0, gt=0.0)
    email_from: str = Field(default="noreply@brandmonitor.com")

    # SMS (Twilio REST API)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None)
    twilio_api_base: str = Field(default="https://api.twilio.com/2010-04-01")
    sms_max_length: int = Field(
        default=160,
        ge=20,
        description="Carrier-safe message length; longer bodies are truncated",
    )
    sms_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Webhook
    webhook_timeout_seconds: float = Field(default=10.0, gt=0.0)
    webhook_user_agent: str = Field(default="LLM-Brand-Monitor/1.0")

    # In-app
    in_app_topic_prefix: str = Field(
        default="notifications",
        description="Redis pub/sub topic prefix; topic is '<prefix>:user-<id>'",
    )
