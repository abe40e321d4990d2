"""Duplicate suppression for triggered evaluations.

A triggered evaluation is dropped when an unresolved alert for the same
brand and metric, with a current value close to the new one, was raised
within the suppression window. "Close" is a fraction of the threshold's
magnitude, never less than the equality tolerance. The check fails open: a lookup
error lets the alert through.
"""

import logging

import asyncpg

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.alerts.schemas import AlertEvaluationResult

logger = logging.getLogger(__name__)


class SuppressionFilter:
    """Decides whether a triggered evaluation is a recent duplicate."""

    def __init__(self, alert_repo: AlertRepository, config: AlertConfig) -> None:
        self._alert_repo = alert_repo
        self._config = config

    def tolerance_for(self, threshold_value: float) -> float:
        """Similarity distance for a threshold, floored at the equality tolerance.

        A zero threshold would otherwise match nothing, since the lookup
        compares with a strict ``<``.
        """
        return max(
            abs(threshold_value) * self._config.suppression_tolerance_ratio,
            self._config.equality_tolerance,
        )

    async def should_suppress(
        self,
        result: AlertEvaluationResult,
        conn: asyncpg.Connection | None = None,
    ) -> bool:
        """Return True if a similar alert was raised recently.

        Never raises. When ``conn`` belongs to an open transaction the
        lookup runs in a savepoint so a failed query does not abort it.

        Args:
            result: A triggered evaluation.
            conn: Connection holding the similarity lock, if any.

        Returns:
            True if the evaluation should be dropped.
        """
        if not result.triggered:
            return False

        threshold = result.threshold
        try:
            if conn is not None:
                async with conn.transaction():
                    match = await self._find(result, conn)
            else:
                match = await self._find(result, None)
        except Exception as e:
            logger.warning(
                "Suppression check failed for brand %s metric %s, allowing alert: %s",
                threshold.brand_id,
                threshold.metric_type,
                e,
            )
            return False

        if match is not None:
            logger.debug(
                "Alert suppressed: brand %s metric %s matches alert %s",
                threshold.brand_id,
                threshold.metric_type,
                match,
            )
            return True
        return False

    async def _find(
        self,
        result: AlertEvaluationResult,
        conn: asyncpg.Connection | None,
    ) -> str | None:
        threshold = result.threshold
        return await self._alert_repo.find_similar(
            threshold.brand_id,
            threshold.metric_type,
            result.current_value,
            self.tolerance_for(threshold.threshold_value),
            self._config.suppression_window_minutes,
            conn=conn,
        )
