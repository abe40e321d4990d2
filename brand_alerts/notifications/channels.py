"""Channel senders for alert notifications.

Every sender resolves a recipient address for a user and then delivers an
alert to that address, reporting the outcome as a ``SendResult``. Senders
never raise for delivery problems: transport errors become failed results.
Address resolution raises ``DeliveryError``, which the router records as a
failed delivery.

HTTP senders create a short-lived ``httpx.AsyncClient`` per call with an
explicit timeout.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape
from typing import Any

import aiosmtplib
import httpx

from brand_alerts.alerts.schemas import Alert
from brand_alerts.errors import DeliveryError
from brand_alerts.notifications.config import NotificationConfig
from brand_alerts.notifications.schemas import (
    EmailPayload,
    InAppNotification,
    InAppPayload,
    NotificationPreference,
    SendResult,
    SmsPayload,
    WebhookPayload,
)
from brand_alerts.notifications.tracker import InAppNotificationRepository
from brand_alerts.storage.users import UserDirectory

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "critical": "#dc3545",
    "high": "#fd7e14",
    "medium": "#ffc107",
    "low": "#28a745",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChannelSender(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel name as used in thresholds and preferences."""

    @abstractmethod
    async def resolve_recipient(
        self,
        user_id: str,
        preference: NotificationPreference,
    ) -> str:
        """Address to deliver to for this user.

        Raises:
            DeliveryError: The user has no address for this channel.
        """

    @abstractmethod
    async def send(self, alert: Alert, recipient: str) -> SendResult:
        """Deliver an alert to ``recipient``."""


class EmailSender(ChannelSender):
    """Delivers alerts over SMTP with aiosmtplib.

    The address comes from the preference's ``email_address`` when set,
    otherwise from the user record.
    """

    def __init__(self, config: NotificationConfig, users: UserDirectory) -> None:
        self._config = config
        self._users = users

    @property
    def name(self) -> str:
        return "email"

    async def resolve_recipient(
        self,
        user_id: str,
        preference: NotificationPreference,
    ) -> str:
        if preference.email_address:
            return preference.email_address
        user = await self._users.get_user(user_id)
        if user is None:
            raise DeliveryError(f"User {user_id} not found")
        return user.email

    def build_subject(self, alert: Alert) -> str:
        return f"{alert.severity.capitalize()} Alert: {alert.title}"

    def _render_html(self, alert: Alert) -> str:
        color = SEVERITY_COLORS.get(alert.severity, "#6c757d")
        body = escape(alert.message).replace("\n", "<br>")
        return (
            "<html><body style=\"font-family: Arial, sans-serif;\">"
            f"<div style=\"border-left: 4px solid {color}; padding: 12px;\">"
            f"<h2 style=\"color: {color};\">{escape(alert.title)}</h2>"
            f"<p><strong>Severity:</strong> {escape(alert.severity.upper())}</p>"
            f"<p>{body}</p>"
            f"<p style=\"color: #6c757d;\">Alert ID: {escape(alert.id)}<br>"
            f"Created: {alert.created_at.isoformat()}</p>"
            "</div></body></html>"
        )

    def build_message(self, alert: Alert, recipient: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._config.email_from
        msg["To"] = recipient
        msg["Subject"] = self.build_subject(alert)
        msg.set_content(alert.message)
        msg.add_alternative(self._render_html(alert), subtype="html")
        return msg

    async def send(self, alert: Alert, recipient: str) -> SendResult:
        subject = self.build_subject(alert)
        msg = self.build_message(alert, recipient)
        payload = EmailPayload(
            from_address=self._config.email_from,
            to_address=recipient,
        )

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._config.smtp_host,
                port=self._config.smtp_port,
                username=self._config.smtp_username,
                password=self._config.smtp_password,
                use_tls=self._config.smtp_use_tls,
                start_tls=self._config.smtp_start_tls,
                timeout=self._config.smtp_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Email to %s failed for alert %s: %s", recipient, alert.id, e)
            return SendResult.failed(
                recipient,
                alert.message,
                f"Email sending failed: {e}",
                subject=subject,
                payload=payload,
            )

        return SendResult(
            status="sent",
            recipient=recipient,
            content=alert.message,
            subject=subject,
            payload=payload,
            sent_at=_now(),
        )


class SmsSender(ChannelSender):
    """Delivers alerts as SMS through the Twilio REST API.

    Without Twilio credentials the message is logged instead of sent
    (dry run) and still reported as ``sent``.
    """

    def __init__(
        self,
        config: NotificationConfig,
        users: UserDirectory | None = None,
    ) -> None:
        self._config = config
        self._users = users

    @property
    def name(self) -> str:
        return "sms"

    @property
    def dry_run(self) -> bool:
        return not (
            self._config.twilio_account_sid
            and self._config.twilio_auth_token
            and self._config.twilio_from_number
        )

    async def resolve_recipient(
        self,
        user_id: str,
        preference: NotificationPreference,
    ) -> str:
        if preference.phone_number:
            return preference.phone_number
        if self._users is not None:
            user = await self._users.get_user(user_id)
            if user is not None and user.phone:
                return user.phone
        raise DeliveryError(f"Phone number not found for user {user_id}")

    def build_body(self, alert: Alert) -> tuple[str, bool]:
        """Return the SMS text and whether it had to be truncated."""
        text = f"{alert.severity.upper()} ALERT: {alert.title}\n{alert.message}"
        limit = self._config.sms_max_length
        if len(text) <= limit:
            return text, False
        return text[: limit - 3] + "...", True

    async def send(self, alert: Alert, recipient: str) -> SendResult:
        body, truncated = self.build_body(alert)

        if self.dry_run:
            logger.info("SMS (dry run) to %s for alert %s", recipient, alert.id)
            return SendResult(
                status="sent",
                recipient=recipient,
                content=body,
                payload=SmsPayload(
                    to_number=recipient,
                    provider="dry_run",
                    truncated=truncated,
                    dry_run=True,
                ),
                sent_at=_now(),
            )

        sid = self._config.twilio_account_sid
        url = f"{self._config.twilio_api_base}/Accounts/{sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=self._config.sms_timeout_seconds) as client:
                resp = await client.post(
                    url,
                    data={
                        "To": recipient,
                        "From": self._config.twilio_from_number,
                        "Body": body,
                    },
                    auth=(sid, self._config.twilio_auth_token),
                )
        except httpx.TimeoutException:
            return SendResult.failed(
                recipient,
                body,
                f"SMS sending failed: timed out after {self._config.sms_timeout_seconds}s",
            )
        except httpx.HTTPError as e:
            return SendResult.failed(recipient, body, f"SMS sending failed: {e}")

        if not resp.is_success:
            logger.warning(
                "Twilio returned %d for alert %s", resp.status_code, alert.id,
            )
            return SendResult.failed(
                recipient, body, f"SMS sending failed: HTTP {resp.status_code}",
            )

        message_sid = None
        try:
            message_sid = resp.json().get("sid")
        except ValueError:
            logger.debug("Twilio response for alert %s was not JSON", alert.id)

        return SendResult(
            status="sent",
            recipient=recipient,
            content=body,
            payload=SmsPayload(
                to_number=recipient,
                provider="twilio",
                provider_message_id=message_sid,
                truncated=truncated,
            ),
            sent_at=_now(),
        )


class WebhookSender(ChannelSender):
    """POSTs an ``alert.triggered`` JSON envelope to the user's webhook."""

    def __init__(self, config: NotificationConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return "webhook"

    async def resolve_recipient(
        self,
        user_id: str,
        preference: NotificationPreference,
    ) -> str:
        if not preference.webhook_url:
            raise DeliveryError(f"Webhook URL not found for user {user_id}")
        return preference.webhook_url

    def build_payload(self, alert: Alert) -> dict[str, Any]:
        return {
            "event": "alert.triggered",
            "timestamp": _now().isoformat(),
            "alert": {
                "id": alert.id,
                "title": alert.title,
                "message": alert.message,
                "severity": alert.severity,
                "brand_id": alert.brand_id,
                "metric_type": alert.metric_type,
                "current_value": alert.current_value,
                "threshold_value": alert.threshold_value,
                "created_at": alert.created_at.isoformat(),
            },
        }

    async def send(self, alert: Alert, recipient: str) -> SendResult:
        body = self.build_payload(alert)
        content = json.dumps(body)
        timeout = self._config.webhook_timeout_seconds
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    recipient,
                    json=body,
                    headers={"User-Agent": self._config.webhook_user_agent},
                )
        except httpx.TimeoutException:
            logger.warning("Webhook %s timed out for alert %s", recipient, alert.id)
            return SendResult.failed(
                recipient,
                content,
                f"Webhook request timed out after {timeout}s",
                payload=WebhookPayload(url=recipient),
            )
        except httpx.HTTPError as e:
            logger.warning("Webhook %s failed for alert %s: %s", recipient, alert.id, e)
            return SendResult.failed(
                recipient,
                content,
                f"Webhook request failed: {e}",
                payload=WebhookPayload(url=recipient),
            )

        payload = WebhookPayload(
            url=recipient,
            status_code=resp.status_code,
            response_time_ms=round((time.monotonic() - started) * 1000, 1),
        )
        if not resp.is_success:
            logger.warning(
                "Webhook %s returned %d for alert %s",
                recipient, resp.status_code, alert.id,
            )
            return SendResult.failed(
                recipient,
                content,
                f"Webhook returned HTTP {resp.status_code}",
                payload=payload,
            )

        return SendResult(
            status="delivered",
            recipient=recipient,
            content=content,
            payload=payload,
            sent_at=_now(),
            delivered_at=_now(),
        )


class InAppSender(ChannelSender):
    """Stores an inbox entry and pushes it to the user's live session.

    The push goes to the Redis pub/sub topic ``<prefix>:user-<id>``. A
    failed push is logged; the stored entry still counts as delivered.
    """

    def __init__(
        self,
        config: NotificationConfig,
        repository: InAppNotificationRepository,
        redis_client: Any | None = None,
    ) -> None:
        self._config = config
        self._repository = repository
        self._redis = redis_client

    @property
    def name(self) -> str:
        return "in_app"

    def topic_for(self, user_id: str) -> str:
        return f"{self._config.in_app_topic_prefix}:user-{user_id}"

    async def resolve_recipient(
        self,
        user_id: str,
        preference: NotificationPreference,
    ) -> str:
        return user_id

    async def send(self, alert: Alert, recipient: str) -> SendResult:
        notification = await self._repository.create(
            InAppNotification(
                user_id=recipient,
                alert_id=None if alert.is_test else alert.id,
                title=alert.title,
                message=alert.message,
                severity=alert.severity,
            )
        )

        topic = self.topic_for(recipient)
        published = False
        if self._redis is not None:
            try:
                await self._redis.publish(topic, json.dumps(notification.to_dict()))
                published = True
            except Exception as e:
                logger.warning("In-app push to %s failed: %s", topic, e)

        return SendResult(
            status="delivered",
            recipient=recipient,
            content=alert.message,
            subject=alert.title,
            payload=InAppPayload(
                notification_id=notification.id,
                topic=topic,
                published=published,
            ),
            delivered_at=_now(),
        )
