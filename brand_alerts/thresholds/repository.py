"""Threshold repository: CRUD with soft delete for ``alert_thresholds``."""

import logging
from typing import Any

from brand_alerts.errors import (
    NotFoundError,
    UnknownMetricType,
    UnknownOperator,
    ValidationError,
)
from brand_alerts.storage.database import Database, rows_affected
from brand_alerts.thresholds.schemas import (
    VALID_CHANNELS,
    VALID_METRIC_TYPES,
    VALID_OPERATORS,
    AlertThreshold,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "metric_type",
    "threshold_value",
    "comparison_operator",
    "notification_channels",
)


def validate_threshold_fields(fields: dict[str, Any]) -> None:
    """Reject unknown metric types, operators and channel names.

    Raises:
        UnknownMetricType, UnknownOperator, ValidationError
    """
    metric_type = fields.get("metric_type")
    if metric_type is not None and metric_type not in VALID_METRIC_TYPES:
        raise UnknownMetricType(metric_type)

    operator = fields.get("comparison_operator")
    if operator is not None and operator not in VALID_OPERATORS:
        raise UnknownOperator(operator)

    channels = fields.get("notification_channels")
    if channels is not None:
        unknown = sorted(set(channels) - VALID_CHANNELS)
        if unknown:
            raise ValidationError(
                f"Unknown notification channels {unknown}. "
                f"Must be one of: {sorted(VALID_CHANNELS)}"
            )


class ThresholdRepository:
    """Repository for threshold persistence.

    Thresholds are never hard-deleted: ``deactivate`` flips ``is_active`` so
    alerts keep their ``alert_threshold_id`` reference.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(self, threshold: AlertThreshold) -> AlertThreshold:
        """Insert a new threshold after validating its fields."""
        validate_threshold_fields({
            "metric_type": threshold.metric_type,
            "comparison_operator": threshold.comparison_operator,
            "notification_channels": threshold.notification_channels,
        })
        sql = """
            INSERT INTO alert_thresholds (
                id, brand_id, user_id, metric_type, threshold_value,
                comparison_operator, is_active, notification_channels,
                created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            threshold.id,
            threshold.brand_id,
            threshold.user_id,
            threshold.metric_type,
            threshold.threshold_value,
            threshold.comparison_operator,
            threshold.is_active,
            list(threshold.notification_channels),
            threshold.created_at,
            threshold.updated_at,
        )
        return _row_to_threshold(row)

    async def update(self, threshold_id: str, **updates: Any) -> AlertThreshold:
        """Apply a partial update to an active threshold.

        Only ``UPDATABLE_FIELDS`` are accepted; ``None`` values are skipped.

        Raises:
            ValidationError: No updatable fields, or invalid values.
            NotFoundError: Threshold absent or inactive.
        """
        changes = {
            k: v for k, v in updates.items()
            if k in UPDATABLE_FIELDS and v is not None
        }
        if not changes:
            raise ValidationError("No valid fields to update")
        validate_threshold_fields(changes)

        if "notification_channels" in changes:
            changes["notification_channels"] = list(
                dict.fromkeys(changes["notification_channels"])
            )

        set_parts: list[str] = []
        params: list[Any] = []
        param_idx = 1
        for column, value in changes.items():
            set_parts.append(f"{column} = ${param_idx}")
            params.append(value)
            param_idx += 1
        set_parts.append("updated_at = NOW()")
        params.append(threshold_id)

        sql = f"""
            UPDATE alert_thresholds
            SET {", ".join(set_parts)}
            WHERE id = ${param_idx} AND is_active = TRUE
            RETURNING *
        """
        row = await self._db.fetchrow(sql, *params)
        if row is None:
            raise NotFoundError(
                f"Alert threshold with ID {threshold_id} not found or inactive"
            )
        return _row_to_threshold(row)

    async def deactivate(self, threshold_id: str) -> None:
        """Soft-delete a threshold.

        Raises:
            NotFoundError: Threshold absent.
        """
        status = await self._db.execute(
            """
            UPDATE alert_thresholds
            SET is_active = FALSE, updated_at = NOW()
            WHERE id = $1
            """,
            threshold_id,
        )
        if rows_affected(status) == 0:
            raise NotFoundError(f"Alert threshold with ID {threshold_id} not found")
        logger.info("Deactivated alert threshold %s", threshold_id)

    async def get_by_id(self, threshold_id: str) -> AlertThreshold | None:
        """Get a threshold by ID, active or not."""
        row = await self._db.fetchrow(
            "SELECT * FROM alert_thresholds WHERE id = $1", threshold_id,
        )
        if row is None:
            return None
        return _row_to_threshold(row)

    async def list_active(self, brand_id: str) -> list[AlertThreshold]:
        """Active thresholds for a brand, newest first."""
        rows = await self._db.fetch(
            """
            SELECT * FROM alert_thresholds
            WHERE brand_id = $1 AND is_active = TRUE
            ORDER BY created_at DESC
            """,
            brand_id,
        )
        return [_row_to_threshold(row) for row in rows]


def _row_to_threshold(row: Any) -> AlertThreshold:
    """Convert an asyncpg Record to an AlertThreshold."""
    return AlertThreshold(
        id=row["id"],
        brand_id=row["brand_id"],
        user_id=row["user_id"],
        metric_type=row["metric_type"],
        threshold_value=row["threshold_value"],
        comparison_operator=row["comparison_operator"],
        is_active=row.get("is_active", True),
        notification_channels=tuple(row.get("notification_channels") or ()),
        created_at=row["created_at"],
        updated_at=row.get("updated_at") or row["created_at"],
    )
