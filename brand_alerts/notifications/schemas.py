"""Schema definitions for notification preferences, deliveries and payloads.

``NotificationDelivery`` rows are an append-only audit log: one row per
(alert, channel, user) attempt with exactly one terminal status.
Channel-specific extra data travels in a closed set of payload types,
each tagged with a ``kind`` so it survives a JSONB round trip.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timezone
from typing import Any, Literal, Union

DeliveryStatus = Literal["sent", "delivered", "failed", "bounced"]

VALID_DELIVERY_STATUSES: frozenset[str] = frozenset(
    {"sent", "delivered", "failed", "bounced"}
)

SUCCESS_STATUSES: frozenset[str] = frozenset({"sent", "delivered"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NotificationPreference:
    """Per-recipient delivery policy, one row per user.

    Attributes:
        user_id: Recipient.
        email_enabled / sms_enabled / webhook_enabled / in_app_enabled:
            Channel switches.
        quiet_hours_start / quiet_hours_end: Local wall-clock window during
            which nothing is delivered. The window may wrap midnight.
        frequency_limit: Maximum deliveries per rolling window (0 = no cap).
        email_address / phone_number / webhook_url: Channel addresses.
    """

    user_id: str
    email_enabled: bool = True
    sms_enabled: bool = False
    webhook_enabled: bool = False
    in_app_enabled: bool = True
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    frequency_limit: int = 10
    email_address: str | None = None
    phone_number: str | None = None
    webhook_url: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def is_channel_enabled(self, channel: str) -> bool:
        """Whether the switch for ``channel`` is on (unknown channels are off)."""
        return bool(getattr(self, f"{channel}_enabled", False))

    @property
    def has_quiet_hours(self) -> bool:
        return self.quiet_hours_start is not None and self.quiet_hours_end is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email_enabled": self.email_enabled,
            "sms_enabled": self.sms_enabled,
            "webhook_enabled": self.webhook_enabled,
            "in_app_enabled": self.in_app_enabled,
            "quiet_hours_start": (
                self.quiet_hours_start.strftime("%H:%M") if self.quiet_hours_start else None
            ),
            "quiet_hours_end": (
                self.quiet_hours_end.strftime("%H:%M") if self.quiet_hours_end else None
            ),
            "frequency_limit": self.frequency_limit,
            "email_address": self.email_address,
            "phone_number": self.phone_number,
            "webhook_url": self.webhook_url,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class EmailPayload:
    from_address: str
    to_address: str
    message_id: str | None = None
    kind: Literal["email"] = "email"


@dataclass(frozen=True)
class SmsPayload:
    to_number: str
    provider: str
    provider_message_id: str | None = None
    truncated: bool = False
    dry_run: bool = False
    kind: Literal["sms"] = "sms"


@dataclass(frozen=True)
class WebhookPayload:
    url: str
    status_code: int | None = None
    response_time_ms: float | None = None
    kind: Literal["webhook"] = "webhook"


@dataclass(frozen=True)
class InAppPayload:
    notification_id: str
    topic: str
    published: bool = False
    kind: Literal["in_app"] = "in_app"


DeliveryPayload = Union[EmailPayload, SmsPayload, WebhookPayload, InAppPayload]

_PAYLOAD_TYPES: dict[str, type] = {
    "email": EmailPayload,
    "sms": SmsPayload,
    "webhook": WebhookPayload,
    "in_app": InAppPayload,
}


def payload_to_dict(payload: DeliveryPayload | None) -> dict[str, Any] | None:
    if payload is None:
        return None
    return asdict(payload)


def payload_from_dict(data: dict[str, Any] | None) -> DeliveryPayload | None:
    """Rebuild a payload from its JSON form, dispatching on ``kind``.

    Returns None for missing data or an unknown kind.
    """
    if not data:
        return None
    payload_type = _PAYLOAD_TYPES.get(data.get("kind", ""))
    if payload_type is None:
        return None
    return payload_type(**data)


@dataclass
class SendResult:
    """What a channel sender reports back for one attempt."""

    status: str
    recipient: str
    content: str
    subject: str | None = None
    payload: DeliveryPayload | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def failed(
        cls,
        recipient: str,
        content: str,
        error_message: str,
        subject: str | None = None,
        payload: DeliveryPayload | None = None,
    ) -> "SendResult":
        return cls(
            status="failed",
            recipient=recipient,
            content=content,
            subject=subject,
            payload=payload,
            error_message=error_message,
        )

    @property
    def success(self) -> bool:
        return self.status in SUCCESS_STATUSES


@dataclass
class NotificationDelivery:
    """One delivery attempt from the notification_deliveries table."""

    alert_id: str
    user_id: str
    channel: str
    status: str
    recipient: str
    content: str
    subject: str | None = None
    error_message: str | None = None
    payload: DeliveryPayload | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if self.status not in VALID_DELIVERY_STATUSES:
            raise ValueError(
                f"Invalid delivery status {self.status!r}. "
                f"Must be one of: {sorted(VALID_DELIVERY_STATUSES)}"
            )

    @classmethod
    def from_result(
        cls,
        alert_id: str,
        user_id: str,
        channel: str,
        result: SendResult,
    ) -> "NotificationDelivery":
        return cls(
            alert_id=alert_id,
            user_id=user_id,
            channel=channel,
            status=result.status,
            recipient=result.recipient,
            content=result.content,
            subject=result.subject,
            error_message=result.error_message,
            payload=result.payload,
            sent_at=result.sent_at,
            delivered_at=result.delivered_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "channel": self.channel,
            "status": self.status,
            "recipient": self.recipient,
            "subject": self.subject,
            "content": self.content,
            "error_message": self.error_message,
            "payload": payload_to_dict(self.payload),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class InAppNotification:
    """A notification shown in the recipient's in-app inbox."""

    user_id: str
    title: str
    message: str
    severity: str
    alert_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_read: bool = False
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "alert_id": self.alert_id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DeliveryStatistics:
    """Aggregate delivery counts, optionally scoped to one user."""

    total_sent: int = 0
    by_channel: dict[str, int] = field(
        default_factory=lambda: {"email": 0, "sms": 0, "webhook": 0, "in_app": 0}
    )
    by_status: dict[str, int] = field(
        default_factory=lambda: {"sent": 0, "delivered": 0, "failed": 0, "bounced": 0}
    )

    @property
    def success_rate(self) -> float:
        """Percentage of deliveries that ended sent or delivered (0 when empty)."""
        if self.total_sent == 0:
            return 0.0
        succeeded = self.by_status.get("sent", 0) + self.by_status.get("delivered", 0)
        return succeeded / self.total_sent * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sent": self.total_sent,
            "by_channel": dict(self.by_channel),
            "by_status": dict(self.by_status),
            "success_rate": self.success_rate,
        }
