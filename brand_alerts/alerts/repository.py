"""Alert repository for CRUD, lifecycle and suppression queries.

Follows the ThresholdRepository pattern with asyncpg. Methods that take
part in the suppress-then-insert sequence accept an optional connection
so they can run inside the transaction opened by ``similarity_lock``.
"""

import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg

from brand_alerts.alerts.schemas import Alert, AlertStatistics
from brand_alerts.errors import NotFoundError
from brand_alerts.storage.database import Database, rows_affected

logger = logging.getLogger(__name__)


def similarity_lock_key(brand_id: str, metric_type: str, threshold_value: float) -> int:
    """Signed 64-bit advisory lock key for a (brand, metric, threshold) bucket."""
    bucket = f"{brand_id}:{metric_type}:{round(threshold_value, 2)}"
    digest = hashlib.blake2b(bucket.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class AlertRepository:
    """Repository for alert persistence and querying.

    Provides create, read, lifecycle, statistics and retention operations
    for Alert records stored in the ``alerts`` table.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def similarity_lock(
        self,
        brand_id: str,
        metric_type: str,
        threshold_value: float,
    ) -> AsyncIterator[asyncpg.Connection]:
        """Open a transaction holding the advisory lock for this bucket.

        Concurrent evaluations of the same threshold serialize here, so the
        suppression check and the insert that follows it see each other.

        Usage:
            async with repo.similarity_lock(brand, metric, value) as conn:
                if not await repo.find_similar(..., conn=conn):
                    await repo.create(alert, conn=conn)
        """
        key = similarity_lock_key(brand_id, metric_type, threshold_value)
        async with self._db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock($1)", key)
            yield conn

    async def create(
        self,
        alert: Alert,
        conn: asyncpg.Connection | None = None,
    ) -> Alert:
        """Insert a new alert.

        Raises:
            NotFoundError: The referenced brand or threshold does not exist.
        """
        sql = """
            INSERT INTO alerts (
                id, brand_id, alert_threshold_id, severity, title, message,
                metric_type, current_value, threshold_value,
                is_acknowledged, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING *
        """
        executor = conn or self._db
        try:
            row = await executor.fetchrow(
                sql,
                alert.id,
                alert.brand_id,
                alert.alert_threshold_id,
                alert.severity,
                alert.title,
                alert.message,
                alert.metric_type,
                alert.current_value,
                alert.threshold_value,
                alert.is_acknowledged,
                alert.created_at,
            )
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFoundError(
                f"Brand {alert.brand_id} or threshold "
                f"{alert.alert_threshold_id} not found"
            ) from e
        return _row_to_alert(row)

    async def find_similar(
        self,
        brand_id: str,
        metric_type: str,
        current_value: float,
        tolerance: float,
        window_minutes: int,
        conn: asyncpg.Connection | None = None,
    ) -> str | None:
        """Find a recent unresolved alert close to ``current_value``.

        Args:
            brand_id: Brand of the new evaluation.
            metric_type: Metric of the new evaluation.
            current_value: Value just observed.
            tolerance: Maximum absolute distance between stored and new value.
            window_minutes: Look-back window.
            conn: Connection of an enclosing transaction.

        Returns:
            ID of a matching alert, or None.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=window_minutes)
        sql = """
            SELECT id FROM alerts
            WHERE brand_id = $1
              AND metric_type = $2
              AND resolved_at IS NULL
              AND created_at > $3
              AND ABS(current_value - $4) < $5
            ORDER BY created_at DESC
            LIMIT 1
        """
        executor = conn or self._db
        return await executor.fetchval(
            sql, brand_id, metric_type, cutoff, current_value, tolerance,
        )

    async def get_by_id(self, alert_id: str) -> Alert | None:
        """Get an alert by ID."""
        row = await self._db.fetchrow("SELECT * FROM alerts WHERE id = $1", alert_id)
        if row is None:
            return None
        return _row_to_alert(row)

    async def acknowledge(self, alert_id: str, user_id: str) -> Alert:
        """Mark an alert as reviewed by ``user_id``.

        Raises:
            NotFoundError: Alert or user absent.
        """
        sql = """
            UPDATE alerts
            SET is_acknowledged = TRUE,
                acknowledged_by = $2,
                acknowledged_at = NOW()
            WHERE id = $1
            RETURNING *
        """
        try:
            row = await self._db.fetchrow(sql, alert_id, user_id)
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFoundError(f"User {user_id} not found") from e
        if row is None:
            raise NotFoundError(f"Alert with ID {alert_id} not found")
        return _row_to_alert(row)

    async def resolve(self, alert_id: str) -> Alert:
        """Move an alert to its terminal resolved state.

        Resolving twice keeps the first ``resolved_at``.

        Raises:
            NotFoundError: Alert absent.
        """
        sql = """
            UPDATE alerts
            SET resolved_at = COALESCE(resolved_at, NOW())
            WHERE id = $1
            RETURNING *
        """
        row = await self._db.fetchrow(sql, alert_id)
        if row is None:
            raise NotFoundError(f"Alert with ID {alert_id} not found")
        return _row_to_alert(row)

    async def list_for_brand(
        self,
        brand_id: str,
        *,
        severity: str | None = None,
        acknowledged: bool | None = None,
        resolved: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """Get a brand's alerts with optional filtering.

        Args:
            brand_id: Brand to list.
            severity: Filter by severity level.
            acknowledged: Filter by acknowledgement status.
            resolved: True for resolved only, False for unresolved only.
            limit: Maximum alerts to return.
            offset: Offset for pagination.

        Returns:
            List of alerts ordered by created_at descending.
        """
        conditions: list[str] = ["brand_id = $1"]
        params: list[Any] = [brand_id]
        param_idx = 2

        if severity is not None:
            conditions.append(f"severity = ${param_idx}")
            params.append(severity)
            param_idx += 1

        if acknowledged is not None:
            conditions.append(f"is_acknowledged = ${param_idx}")
            params.append(acknowledged)
            param_idx += 1

        if resolved is not None:
            conditions.append(
                "resolved_at IS NOT NULL" if resolved else "resolved_at IS NULL"
            )

        sql = f"""
            SELECT * FROM alerts
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]

    async def statistics(self, brand_id: str) -> AlertStatistics:
        """Count a brand's alerts by severity and lifecycle state."""
        sql = """
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE severity = 'low') AS low,
                COUNT(*) FILTER (WHERE severity = 'medium') AS medium,
                COUNT(*) FILTER (WHERE severity = 'high') AS high,
                COUNT(*) FILTER (WHERE severity = 'critical') AS critical,
                COUNT(*) FILTER (WHERE is_acknowledged) AS acknowledged,
                COUNT(*) FILTER (WHERE resolved_at IS NOT NULL) AS resolved,
                COUNT(*) FILTER (WHERE resolved_at IS NULL) AS active
            FROM alerts
            WHERE brand_id = $1
        """
        row = await self._db.fetchrow(sql, brand_id)
        if row is None:
            return AlertStatistics()
        return AlertStatistics(
            total=row["total"] or 0,
            by_severity={
                "low": row["low"] or 0,
                "medium": row["medium"] or 0,
                "high": row["high"] or 0,
                "critical": row["critical"] or 0,
            },
            acknowledged=row["acknowledged"] or 0,
            resolved=row["resolved"] or 0,
            active=row["active"] or 0,
        )

    async def count_resolved_before(self, cutoff: datetime) -> int:
        """Count resolved alerts that ``delete_resolved_before`` would remove."""
        count = await self._db.fetchval(
            """
            SELECT COUNT(*) FROM alerts
            WHERE resolved_at IS NOT NULL AND resolved_at < $1
            """,
            cutoff,
        )
        return count or 0

    async def delete_resolved_before(self, cutoff: datetime) -> int:
        """Delete alerts resolved before ``cutoff``.

        Unresolved alerts are never touched.

        Returns:
            Number of rows deleted.
        """
        status = await self._db.execute(
            """
            DELETE FROM alerts
            WHERE resolved_at IS NOT NULL AND resolved_at < $1
            """,
            cutoff,
        )
        return rows_affected(status)


def _row_to_alert(row: Any) -> Alert:
    """Convert an asyncpg Record to an Alert."""
    current_value = row.get("current_value")
    threshold_value = row.get("threshold_value")
    return Alert(
        id=row["id"],
        brand_id=row["brand_id"],
        alert_threshold_id=row.get("alert_threshold_id"),
        severity=row["severity"],
        title=row["title"],
        message=row["message"],
        metric_type=row["metric_type"],
        current_value=float(current_value) if current_value is not None else None,
        threshold_value=float(threshold_value) if threshold_value is not None else None,
        is_acknowledged=row.get("is_acknowledged", False),
        acknowledged_by=row.get("acknowledged_by"),
        acknowledged_at=row.get("acknowledged_at"),
        resolved_at=row.get("resolved_at"),
        created_at=row["created_at"],
    )
