"""Notification preference store.

One row per user in ``notification_preferences``, created with defaults
the first time it is read.
"""

import logging
from datetime import time
from typing import Any

from brand_alerts.errors import ValidationError
from brand_alerts.notifications.schemas import NotificationPreference
from brand_alerts.storage.database import Database

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "email_enabled",
    "sms_enabled",
    "webhook_enabled",
    "in_app_enabled",
    "quiet_hours_start",
    "quiet_hours_end",
    "frequency_limit",
    "email_address",
    "phone_number",
    "webhook_url",
)


def parse_clock_time(value: Any) -> time | None:
    """Accept ``time`` objects or ``HH:MM`` / ``HH:MM:SS`` strings.

    Raises:
        ValidationError: Unparseable value.
    """
    if value is None or isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid time of day {value!r}, expected HH:MM")


class PreferenceRepository:
    """Get-or-create and partial update of notification preferences."""

    def __init__(self, database: Database, default_frequency_limit: int = 10) -> None:
        self._db = database
        self._default_frequency_limit = default_frequency_limit

    async def get(self, user_id: str) -> NotificationPreference | None:
        row = await self._db.fetchrow(
            "SELECT * FROM notification_preferences WHERE user_id = $1", user_id,
        )
        if row is None:
            return None
        return _row_to_preference(row)

    async def get_or_create(self, user_id: str) -> NotificationPreference:
        """Return the user's preferences, inserting defaults if absent.

        Defaults: email and in-app on, SMS and webhook off, the configured
        frequency limit, no quiet hours.
        """
        existing = await self.get(user_id)
        if existing is not None:
            return existing

        defaults = NotificationPreference(
            user_id=user_id,
            frequency_limit=self._default_frequency_limit,
        )
        row = await self._db.fetchrow(
            """
            INSERT INTO notification_preferences (
                user_id, email_enabled, sms_enabled, webhook_enabled,
                in_app_enabled, frequency_limit
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id) DO UPDATE SET user_id = EXCLUDED.user_id
            RETURNING *
            """,
            user_id,
            defaults.email_enabled,
            defaults.sms_enabled,
            defaults.webhook_enabled,
            defaults.in_app_enabled,
            defaults.frequency_limit,
        )
        logger.info("Created default notification preferences for user %s", user_id)
        return _row_to_preference(row)

    async def update(self, user_id: str, **updates: Any) -> NotificationPreference:
        """Apply a partial update, creating the row first if needed.

        Only ``UPDATABLE_FIELDS`` are applied; other keys are ignored.

        Raises:
            ValidationError: Nothing to update, or an invalid value.
        """
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No valid fields to update")

        for key in ("quiet_hours_start", "quiet_hours_end"):
            if key in changes:
                changes[key] = parse_clock_time(changes[key])

        limit = changes.get("frequency_limit")
        if limit is not None and (not isinstance(limit, int) or limit < 0):
            raise ValidationError(
                f"frequency_limit must be a non-negative integer, got {limit!r}"
            )

        await self.get_or_create(user_id)

        set_parts: list[str] = []
        params: list[Any] = []
        param_idx = 1
        for column, value in changes.items():
            set_parts.append(f"{column} = ${param_idx}")
            params.append(value)
            param_idx += 1
        set_parts.append("updated_at = NOW()")
        params.append(user_id)

        sql = f"""
            UPDATE notification_preferences
            SET {", ".join(set_parts)}
            WHERE user_id = ${param_idx}
            RETURNING *
        """
        row = await self._db.fetchrow(sql, *params)
        return _row_to_preference(row)


def _row_to_preference(row: Any) -> NotificationPreference:
    """Convert an asyncpg Record to a NotificationPreference."""
    return NotificationPreference(
        user_id=row["user_id"],
        email_enabled=row["email_enabled"],
        sms_enabled=row["sms_enabled"],
        webhook_enabled=row["webhook_enabled"],
        in_app_enabled=row["in_app_enabled"],
        quiet_hours_start=row.get("quiet_hours_start"),
        quiet_hours_end=row.get("quiet_hours_end"),
        frequency_limit=row["frequency_limit"],
        email_address=row.get("email_address"),
        phone_number=row.get("phone_number"),
        webhook_url=row.get("webhook_url"),
        created_at=row["created_at"],
        updated_at=row.get("updated_at") or row["created_at"],
    )
