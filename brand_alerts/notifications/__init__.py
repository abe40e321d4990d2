"""Notification delivery for created alerts.

Components:
- NotificationPreference / NotificationDelivery / InAppNotification: table dataclasses
- EmailPayload / SmsPayload / WebhookPayload / InAppPayload: per-channel delivery data
- NotificationConfig: Pydantic settings for providers and policy
- PreferenceRepository: Get-or-create and partial update of preferences
- NotificationRouter: Preference policy then channel dispatch, one delivery row per attempt
- ChannelSender and EmailSender / SmsSender / WebhookSender / InAppSender
- DeliveryTracker: Delivery audit log, statistics and the in-app inbox
"""

from brand_alerts.notifications.channels import (
    ChannelSender,
    EmailSender,
    InAppSender,
    SmsSender,
    WebhookSender,
)
from brand_alerts.notifications.config import NotificationConfig
from brand_alerts.notifications.preferences import PreferenceRepository
from brand_alerts.notifications.router import NotificationRouter
from brand_alerts.notifications.schemas import (
    VALID_DELIVERY_STATUSES,
    DeliveryPayload,
    DeliveryStatistics,
    DeliveryStatus,
    EmailPayload,
    InAppNotification,
    InAppPayload,
    NotificationDelivery,
    NotificationPreference,
    SendResult,
    SmsPayload,
    WebhookPayload,
)
from brand_alerts.notifications.tracker import (
    DeliveryRepository,
    DeliveryTracker,
    InAppNotificationRepository,
)

__all__ = [
    "ChannelSender",
    "DeliveryPayload",
    "DeliveryRepository",
    "DeliveryStatistics",
    "DeliveryStatus",
    "DeliveryTracker",
    "EmailPayload",
    "EmailSender",
    "InAppNotification",
    "InAppNotificationRepository",
    "InAppPayload",
    "InAppSender",
    "NotificationConfig",
    "NotificationDelivery",
    "NotificationPreference",
    "NotificationRouter",
    "PreferenceRepository",
    "SendResult",
    "SmsPayload",
    "SmsSender",
    "VALID_DELIVERY_STATUSES",
    "WebhookPayload",
    "WebhookSender",
]
