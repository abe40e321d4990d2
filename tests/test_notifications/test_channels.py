"""Tests for the channel senders."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest
import respx

from brand_alerts.alerts.schemas import Alert
from brand_alerts.errors import DeliveryError
from brand_alerts.notifications.channels import (
    EmailSender,
    InAppSender,
    SmsSender,
    WebhookSender,
)
from brand_alerts.notifications.config import NotificationConfig
from brand_alerts.notifications.schemas import (
    InAppNotification,
    NotificationPreference,
)
from brand_alerts.storage.users import User, UserDirectory

TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
HOOK_URL = "https://hooks.example.com/alerts"


@pytest.fixture
def mock_users():
    users = AsyncMock(spec=UserDirectory)
    users.get_user.return_value = User(
        id="user-1", email="ana@example.com", phone="+15550001111",
    )
    return users


@pytest.fixture
def twilio_config():
    return NotificationConfig(
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_from_number="+15559990000",
    )


# ── Email ────────────────────────────────────────────────


class TestEmailSender:
    @pytest.fixture
    def sender(self, notification_config, mock_users):
        return EmailSender(notification_config, mock_users)

    @pytest.mark.asyncio
    async def test_recipient_prefers_preference_address(self, sender, mock_users):
        pref = NotificationPreference(user_id="user-1", email_address="alerts@acme.io")
        assert await sender.resolve_recipient("user-1", pref) == "alerts@acme.io"
        mock_users.get_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recipient_falls_back_to_user_record(self, sender, default_preference):
        assert await sender.resolve_recipient("user-1", default_preference) == "ana@example.com"

    @pytest.mark.asyncio
    async def test_unknown_user(self, sender, mock_users, default_preference):
        mock_users.get_user.return_value = None
        with pytest.raises(DeliveryError, match="User user-1 not found"):
            await sender.resolve_recipient("user-1", default_preference)

    def test_message_has_text_and_html(self, sender, sample_alert):
        msg = sender.build_message(sample_alert, "ana@example.com")

        assert msg["Subject"] == f"Medium Alert: {sample_alert.title}"
        assert msg["To"] == "ana@example.com"
        assert msg["From"] == "noreply@brandmonitor.com"
        assert msg.get_body(("plain",)).get_content().strip() == sample_alert.message.strip()
        assert "#ffc107" in msg.get_body(("html",)).get_content()

    @pytest.mark.asyncio
    async def test_send_success(self, sender, sample_alert):
        with patch(
            "brand_alerts.notifications.channels.aiosmtplib.send", new_callable=AsyncMock,
        ) as mock_send:
            result = await sender.send(sample_alert, "ana@example.com")

        assert result.status == "sent"
        assert result.subject == f"Medium Alert: {sample_alert.title}"
        assert result.sent_at is not None
        assert result.payload.to_address == "ana@example.com"
        kwargs = mock_send.await_args.kwargs
        assert kwargs["hostname"] == "localhost"
        assert kwargs["port"] == 587

    @pytest.mark.asyncio
    async def test_send_failure_is_captured(self, sender, sample_alert):
        with patch(
            "brand_alerts.notifications.channels.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPConnectError("connection refused"),
        ):
            result = await sender.send(sample_alert, "ana@example.com")

        assert result.status == "failed"
        assert result.error_message.startswith("Email sending failed:")
        assert result.recipient == "ana@example.com"


# ── SMS ──────────────────────────────────────────────────


class TestSmsSender:
    @pytest.mark.asyncio
    async def test_recipient_from_preference_then_user(self, notification_config, mock_users):
        sender = SmsSender(notification_config, mock_users)

        pref = NotificationPreference(user_id="user-1", phone_number="+15551234567")
        assert await sender.resolve_recipient("user-1", pref) == "+15551234567"

        pref = NotificationPreference(user_id="user-1")
        assert await sender.resolve_recipient("user-1", pref) == "+15550001111"

    @pytest.mark.asyncio
    async def test_missing_phone(self, notification_config, default_preference):
        sender = SmsSender(notification_config)
        with pytest.raises(DeliveryError, match="Phone number not found for user user-1"):
            await sender.resolve_recipient("user-1", default_preference)

    def test_body_truncated_to_160(self, notification_config, sample_alert):
        sample_alert.message = "x" * 500
        body, truncated = SmsSender(notification_config).build_body(sample_alert)

        assert truncated is True
        assert len(body) == 160
        assert body.endswith("...")
        assert body.startswith("MEDIUM ALERT: ")

    def test_short_body_untouched(self, notification_config, sample_alert):
        sample_alert.title = "Short"
        sample_alert.message = "Score 65"
        body, truncated = SmsSender(notification_config).build_body(sample_alert)

        assert body == "MEDIUM ALERT: Short\nScore 65"
        assert truncated is False

    @pytest.mark.asyncio
    async def test_dry_run_without_credentials(self, notification_config, sample_alert):
        sender = SmsSender(notification_config)
        assert sender.dry_run is True

        result = await sender.send(sample_alert, "+15551234567")

        assert result.status == "sent"
        assert result.payload.dry_run is True
        assert result.payload.provider == "dry_run"

    @pytest.mark.asyncio
    @respx.mock
    async def test_send_via_twilio(self, twilio_config, sample_alert):
        route = respx.post(TWILIO_URL).mock(
            return_value=httpx.Response(201, json={"sid": "SM42"})
        )

        result = await SmsSender(twilio_config).send(sample_alert, "+15551234567")

        assert route.called
        request = route.calls.last.request
        assert b"To=%2B15551234567" in request.content
        assert request.headers["Authorization"].startswith("Basic ")
        assert result.status == "sent"
        assert result.payload.provider == "twilio"
        assert result.payload.provider_message_id == "SM42"

    @pytest.mark.asyncio
    @respx.mock
    async def test_twilio_error_status(self, twilio_config, sample_alert):
        respx.post(TWILIO_URL).mock(return_value=httpx.Response(400, json={"code": 21211}))

        result = await SmsSender(twilio_config).send(sample_alert, "+1555")

        assert result.status == "failed"
        assert result.error_message == "SMS sending failed: HTTP 400"

    @pytest.mark.asyncio
    @respx.mock
    async def test_twilio_timeout(self, twilio_config, sample_alert):
        respx.post(TWILIO_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        result = await SmsSender(twilio_config).send(sample_alert, "+15551234567")

        assert result.status == "failed"
        assert "timed out" in result.error_message


# ── Webhook ──────────────────────────────────────────────


class TestWebhookSender:
    @pytest.fixture
    def sender(self, notification_config):
        return WebhookSender(notification_config)

    @pytest.mark.asyncio
    async def test_missing_url(self, sender, default_preference):
        with pytest.raises(DeliveryError, match="Webhook URL not found for user user-1"):
            await sender.resolve_recipient("user-1", default_preference)

    def test_payload_envelope(self, sender, sample_alert):
        body = sender.build_payload(sample_alert)

        assert body["event"] == "alert.triggered"
        assert "timestamp" in body
        assert body["alert"]["id"] == "alert-001"
        assert body["alert"]["current_value"] == 65.0
        assert body["alert"]["created_at"] == "2026-03-01T12:00:00+00:00"

    @pytest.mark.asyncio
    @respx.mock
    async def test_success_is_delivered(self, sender, sample_alert):
        route = respx.post(HOOK_URL).mock(return_value=httpx.Response(204))

        result = await sender.send(sample_alert, HOOK_URL)

        assert result.status == "delivered"
        assert result.delivered_at is not None
        assert result.payload.status_code == 204
        assert route.calls.last.request.headers["User-Agent"] == "LLM-Brand-Monitor/1.0"

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_2xx_fails(self, sender, sample_alert):
        respx.post(HOOK_URL).mock(return_value=httpx.Response(503))

        result = await sender.send(sample_alert, HOOK_URL)

        assert result.status == "failed"
        assert result.error_message == "Webhook returned HTTP 503"
        assert result.payload.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_fails(self, sender, sample_alert):
        mock_client = AsyncMock()
        mock_client.post.side_effect = httpx.ConnectTimeout("timed out")

        with patch("brand_alerts.notifications.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
            result = await sender.send(sample_alert, HOOK_URL)

        assert result.status == "failed"
        assert result.error_message == "Webhook request timed out after 10.0s"


# ── In-app ───────────────────────────────────────────────


class TestInAppSender:
    @pytest.fixture
    def repository(self):
        repo = AsyncMock()
        repo.create.side_effect = lambda notification: notification
        return repo

    @pytest.mark.asyncio
    async def test_stores_and_publishes(self, notification_config, repository, sample_alert):
        redis_client = AsyncMock()
        sender = InAppSender(notification_config, repository, redis_client)

        result = await sender.send(sample_alert, "user-1")

        stored: InAppNotification = repository.create.await_args.args[0]
        assert stored.alert_id == "alert-001"
        assert stored.severity == "medium"
        topic, _ = redis_client.publish.await_args.args
        assert topic == "notifications:user-user-1"
        assert result.status == "delivered"
        assert result.payload.published is True

    @pytest.mark.asyncio
    async def test_publish_failure_still_delivered(
        self, notification_config, repository, sample_alert
    ):
        redis_client = AsyncMock()
        redis_client.publish.side_effect = ConnectionError("redis down")
        sender = InAppSender(notification_config, repository, redis_client)

        result = await sender.send(sample_alert, "user-1")

        assert result.status == "delivered"
        assert result.payload.published is False

    @pytest.mark.asyncio
    async def test_synthetic_alert_is_not_linked(self, notification_config, repository):
        alert = Alert(
            id="test-1700000000000",
            brand_id="test",
            severity="low",
            title="Test Notification",
            message="hello",
            metric_type="test",
        )
        await InAppSender(notification_config, repository).send(alert, "user-1")

        assert repository.create.await_args.args[0].alert_id is None
