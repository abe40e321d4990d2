"""Delivery tracking: the delivery audit log and the in-app inbox.

``DeliveryRepository`` appends ``notification_deliveries`` rows and
aggregates them; ``InAppNotificationRepository`` owns
``in_app_notifications``. ``DeliveryTracker`` is the facade the router and
CLI talk to.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from brand_alerts.errors import NotFoundError
from brand_alerts.notifications.schemas import (
    DeliveryStatistics,
    InAppNotification,
    NotificationDelivery,
    payload_from_dict,
    payload_to_dict,
)
from brand_alerts.observability.metrics import get_metrics
from brand_alerts.storage.database import Database, rows_affected

logger = logging.getLogger(__name__)


class DeliveryRepository:
    """Append-only access to ``notification_deliveries``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def record(self, delivery: NotificationDelivery) -> NotificationDelivery:
        """Insert one delivery attempt."""
        payload = payload_to_dict(delivery.payload)
        sql = """
            INSERT INTO notification_deliveries (
                id, alert_id, user_id, channel, status, recipient, subject,
                content, error_message, payload, sent_at, delivered_at,
                created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            delivery.id,
            delivery.alert_id,
            delivery.user_id,
            delivery.channel,
            delivery.status,
            delivery.recipient,
            delivery.subject,
            delivery.content,
            delivery.error_message,
            json.dumps(payload) if payload is not None else None,
            delivery.sent_at,
            delivery.delivered_at,
            delivery.created_at,
        )
        return _row_to_delivery(row)

    async def history(
        self,
        *,
        user_id: str | None = None,
        alert_id: str | None = None,
        channel: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationDelivery]:
        """Get delivery attempts with optional filtering.

        Args:
            user_id: Filter by recipient.
            alert_id: Filter by alert.
            channel: Filter by channel.
            limit: Maximum rows to return.
            offset: Offset for pagination.

        Returns:
            Deliveries ordered by created_at descending.
        """
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        if user_id is not None:
            conditions.append(f"user_id = ${param_idx}")
            params.append(user_id)
            param_idx += 1

        if alert_id is not None:
            conditions.append(f"alert_id = ${param_idx}")
            params.append(alert_id)
            param_idx += 1

        if channel is not None:
            conditions.append(f"channel = ${param_idx}")
            params.append(channel)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        sql = f"""
            SELECT * FROM notification_deliveries
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_delivery(row) for row in rows]

    async def statistics(self, user_id: str | None = None) -> DeliveryStatistics:
        """Count deliveries by channel and status."""
        sql = """
            SELECT channel, status, COUNT(*) AS count
            FROM notification_deliveries
        """
        params: list[Any] = []
        if user_id is not None:
            sql += " WHERE user_id = $1"
            params.append(user_id)
        sql += " GROUP BY channel, status"

        rows = await self._db.fetch(sql, *params)

        stats = DeliveryStatistics()
        for row in rows:
            count = row["count"] or 0
            stats.total_sent += count
            stats.by_channel[row["channel"]] = stats.by_channel.get(row["channel"], 0) + count
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + count
        return stats

    async def count_recent_for_user(self, user_id: str, window_minutes: int) -> int:
        """Successful deliveries to a user within the last ``window_minutes``."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=window_minutes)
        count = await self._db.fetchval(
            """
            SELECT COUNT(*) FROM notification_deliveries
            WHERE user_id = $1
              AND status IN ('sent', 'delivered')
              AND created_at > $2
            """,
            user_id,
            cutoff,
        )
        return count or 0


class InAppNotificationRepository:
    """The in-app inbox stored in ``in_app_notifications``."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(self, notification: InAppNotification) -> InAppNotification:
        row = await self._db.fetchrow(
            """
            INSERT INTO in_app_notifications (
                id, user_id, alert_id, title, message, severity, is_read,
                created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
            """,
            notification.id,
            notification.user_id,
            notification.alert_id,
            notification.title,
            notification.message,
            notification.severity,
            notification.is_read,
            notification.created_at,
        )
        return _row_to_in_app(row)

    async def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InAppNotification]:
        unread_clause = "AND is_read = FALSE" if unread_only else ""
        rows = await self._db.fetch(
            f"""
            SELECT * FROM in_app_notifications
            WHERE user_id = $1 {unread_clause}
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
            """,
            user_id,
            limit,
            offset,
        )
        return [_row_to_in_app(row) for row in rows]

    async def mark_read(self, notification_id: str, user_id: str) -> None:
        """Mark one notification read.

        Raises:
            NotFoundError: No notification with this id belongs to the user.
        """
        status = await self._db.execute(
            """
            UPDATE in_app_notifications SET is_read = TRUE
            WHERE id = $1 AND user_id = $2
            """,
            notification_id,
            user_id,
        )
        if rows_affected(status) == 0:
            raise NotFoundError(
                f"Notification {notification_id} not found for user {user_id}"
            )

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user read; returns the count."""
        status = await self._db.execute(
            """
            UPDATE in_app_notifications SET is_read = TRUE
            WHERE user_id = $1 AND is_read = FALSE
            """,
            user_id,
        )
        return rows_affected(status)


class DeliveryTracker:
    """Records delivery outcomes and answers audit queries.

    Usage:
        tracker = DeliveryTracker(DeliveryRepository(db), InAppNotificationRepository(db))
        await tracker.record(delivery)
        stats = await tracker.statistics(user_id="u1")
    """

    def __init__(
        self,
        deliveries: DeliveryRepository,
        in_app: InAppNotificationRepository,
    ) -> None:
        self._deliveries = deliveries
        self._in_app = in_app

    @classmethod
    def from_database(cls, database: Database) -> "DeliveryTracker":
        return cls(DeliveryRepository(database), InAppNotificationRepository(database))

    async def record(self, delivery: NotificationDelivery) -> NotificationDelivery:
        stored = await self._deliveries.record(delivery)
        get_metrics().record_delivery(delivery.channel, delivery.status)
        logger.info(
            "Delivery %s: alert=%s user=%s channel=%s status=%s",
            stored.id,
            delivery.alert_id,
            delivery.user_id,
            delivery.channel,
            delivery.status,
        )
        return stored

    async def history(
        self,
        user_id: str | None = None,
        channel: str | None = None,
        limit: int = 50,
        offset: int = 0,
        alert_id: str | None = None,
    ) -> list[NotificationDelivery]:
        return await self._deliveries.history(
            user_id=user_id,
            alert_id=alert_id,
            channel=channel,
            limit=limit,
            offset=offset,
        )

    async def statistics(self, user_id: str | None = None) -> DeliveryStatistics:
        return await self._deliveries.statistics(user_id)

    async def count_recent_for_user(self, user_id: str, window_minutes: int) -> int:
        return await self._deliveries.count_recent_for_user(user_id, window_minutes)

    async def in_app_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InAppNotification]:
        return await self._in_app.list_for_user(
            user_id, unread_only=unread_only, limit=limit, offset=offset,
        )

    async def mark_read(self, notification_id: str, user_id: str) -> None:
        await self._in_app.mark_read(notification_id, user_id)

    async def mark_all_read(self, user_id: str) -> int:
        return await self._in_app.mark_all_read(user_id)


def _row_to_delivery(row: Any) -> NotificationDelivery:
    """Convert an asyncpg Record to a NotificationDelivery."""
    payload = row.get("payload")
    if isinstance(payload, str):
        payload = json.loads(payload)

    return NotificationDelivery(
        id=row["id"],
        alert_id=row["alert_id"],
        user_id=row["user_id"],
        channel=row["channel"],
        status=row["status"],
        recipient=row["recipient"],
        subject=row.get("subject"),
        content=row["content"],
        error_message=row.get("error_message"),
        payload=payload_from_dict(payload),
        sent_at=row.get("sent_at"),
        delivered_at=row.get("delivered_at"),
        created_at=row["created_at"],
    )


def _row_to_in_app(row: Any) -> InAppNotification:
    """Convert an asyncpg Record to an InAppNotification."""
    return InAppNotification(
        id=row["id"],
        user_id=row["user_id"],
        alert_id=row.get("alert_id"),
        title=row["title"],
        message=row["message"],
        severity=row["severity"],
        is_read=row.get("is_read", False),
        created_at=row["created_at"],
    )
