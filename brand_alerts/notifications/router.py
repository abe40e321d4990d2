"""Notification router applying recipient policy before channel dispatch.

For each (alert, channel, recipient) the router loads the recipient's
preferences, applies the policy checks in order and, if they all pass,
hands the alert to the channel sender. Every outcome, success or not, is
written as exactly one delivery row. Delivery problems never propagate
past the router; infrastructure errors (preference or audit storage) do,
so the job queue can retry.
"""

import logging
import time as _time
from collections.abc import Callable, Iterable
from datetime import datetime, time

from brand_alerts.alerts.schemas import TEST_ALERT_ID_PREFIX, Alert
from brand_alerts.errors import DeliveryError
from brand_alerts.notifications import policy
from brand_alerts.notifications.channels import ChannelSender
from brand_alerts.notifications.config import NotificationConfig
from brand_alerts.notifications.preferences import PreferenceRepository
from brand_alerts.notifications.schemas import (
    NotificationDelivery,
    NotificationPreference,
    SendResult,
)
from brand_alerts.notifications.tracker import DeliveryTracker

logger = logging.getLogger(__name__)

TEST_ALERT_TITLE = "Test Notification"
TEST_ALERT_MESSAGE = "This is a test notification to verify your notification settings."


def _local_clock() -> time:
    return datetime.now().time()


def unsupported_message(channel: str) -> str:
    return f"Unsupported notification channel: {channel}"


class NotificationRouter:
    """Routes alerts to channel senders under recipient preference policy.

    Args:
        preferences: Preference store (get-or-create on read).
        tracker: Delivery audit log.
        senders: Channel senders; each is registered under its ``name``.
        config: Notification configuration (frequency window).
        clock: Returns the current local wall-clock time for quiet hours.
    """

    def __init__(
        self,
        preferences: PreferenceRepository,
        tracker: DeliveryTracker,
        senders: Iterable[ChannelSender],
        config: NotificationConfig | None = None,
        clock: Callable[[], time] = _local_clock,
    ) -> None:
        self._preferences = preferences
        self._tracker = tracker
        self._senders = {sender.name: sender for sender in senders}
        self._config = config or NotificationConfig()
        self._clock = clock

    @property
    def channels(self) -> list[str]:
        return list(self._senders)

    async def route(
        self,
        alert: Alert,
        channel: str,
        user_id: str,
        *,
        record: bool = True,
    ) -> NotificationDelivery:
        """Deliver one alert to one user over one channel.

        Args:
            alert: Alert to deliver.
            channel: Channel name from the threshold.
            user_id: Recipient.
            record: Write the delivery row (False only for synthetic alerts).

        Returns:
            The delivery record describing the outcome.
        """
        preference = await self._preferences.get_or_create(user_id)
        result = await self._attempt(alert, channel, user_id, preference)
        delivery = NotificationDelivery.from_result(alert.id, user_id, channel, result)

        if result.success:
            logger.info(
                "Alert %s delivered via %s to user %s (%s)",
                alert.id, channel, user_id, result.status,
            )
        else:
            logger.warning(
                "Alert %s not delivered via %s to user %s: %s",
                alert.id, channel, user_id, result.error_message,
            )

        if record:
            delivery = await self._tracker.record(delivery)
        return delivery

    async def route_all(
        self,
        alert: Alert,
        channels: Iterable[str],
        user_id: str,
    ) -> list[NotificationDelivery]:
        """Deliver over each channel in order, one at a time."""
        return [await self.route(alert, channel, user_id) for channel in channels]

    async def _attempt(
        self,
        alert: Alert,
        channel: str,
        user_id: str,
        preference: NotificationPreference,
    ) -> SendResult:
        sender = self._senders.get(channel)
        if sender is None:
            return SendResult.failed(user_id, alert.message, unsupported_message(channel))

        reason = policy.check_channel(preference, channel)
        if reason is None:
            reason = policy.check_quiet_hours(preference, self._clock())
        if reason is None:
            recent = await self._tracker.count_recent_for_user(
                user_id, self._config.frequency_window_minutes,
            )
            reason = policy.check_frequency(preference, recent)
        if reason is not None:
            return SendResult.failed(user_id, alert.message, reason)

        try:
            recipient = await sender.resolve_recipient(user_id, preference)
        except DeliveryError as e:
            return SendResult.failed(user_id, alert.message, str(e))

        try:
            return await sender.send(alert, recipient)
        except Exception as e:
            logger.exception("Sender %s raised for alert %s", channel, alert.id)
            return SendResult.failed(recipient, alert.message, str(e))

    async def test_notification(self, user_id: str, channel: str) -> NotificationDelivery:
        """Send a synthetic low-severity alert to check a user's channel setup.

        The synthetic alert is never stored, so no delivery row is written;
        the returned record reports the outcome.
        """
        alert = Alert(
            id=f"{TEST_ALERT_ID_PREFIX}{int(_time.time() * 1000)}",
            brand_id="test",
            severity="low",
            title=TEST_ALERT_TITLE,
            message=TEST_ALERT_MESSAGE,
            metric_type="test",
        )
        return await self.route(alert, channel, user_id, record=False)
