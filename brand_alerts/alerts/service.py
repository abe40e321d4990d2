"""Alert service orchestrating evaluation, suppression, persistence and queueing.

Comparison and severity are delegated to the stateless functions in
``evaluator.py``. The service owns the side effects: the similarity lock,
the suppression lookup, the alert insert and the fire-and-forget enqueue.
"""

import logging
from datetime import datetime, timedelta, timezone

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.evaluator import build_alert, evaluate
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.alerts.schemas import Alert, AlertEvaluationResult, AlertStatistics
from brand_alerts.alerts.suppression import SuppressionFilter
from brand_alerts.errors import NotFoundError, ValidationError
from brand_alerts.observability.metrics import get_metrics
from brand_alerts.observability.tracing import get_tracer, traced
from brand_alerts.queues.base import JobQueue
from brand_alerts.thresholds.repository import ThresholdRepository
from brand_alerts.thresholds.schemas import AlertThreshold, MetricSnapshot

logger = logging.getLogger(__name__)


class AlertService:
    """Orchestrator for threshold evaluation and the alert lifecycle.

    Args:
        thresholds: Threshold store.
        alerts: Alert store.
        queue: Job queue receiving one job per created alert (None disables
            queueing, e.g. for dry evaluations).
        config: Alert configuration.
        suppression: Duplicate filter (built from ``alerts`` if omitted).
    """

    def __init__(
        self,
        thresholds: ThresholdRepository,
        alerts: AlertRepository,
        queue: JobQueue | None = None,
        config: AlertConfig | None = None,
        suppression: SuppressionFilter | None = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._thresholds = thresholds
        self._alerts = alerts
        self._queue = queue
        self._suppression = suppression or SuppressionFilter(alerts, self._config)
        self._tracer = get_tracer(__name__)

    async def evaluate_threshold(
        self,
        threshold: AlertThreshold,
        snapshot: MetricSnapshot,
    ) -> AlertEvaluationResult:
        """Evaluate one threshold and create an alert if it fired.

        A triggered evaluation that matches a recent similar alert is
        returned with ``suppressed=True`` and no alert. Otherwise the alert
        is inserted and queued for delivery.

        Raises:
            UnknownMetricType, UnknownOperator: Invalid threshold.
            NotFoundError: Brand or threshold vanished before the insert.
        """
        metrics = get_metrics()
        try:
            result = evaluate(threshold, snapshot, self._config)
        except ValidationError:
            metrics.record_evaluation(threshold.metric_type, "error")
            raise

        if not result.triggered:
            metrics.record_evaluation(threshold.metric_type, "clear")
            return result
        metrics.record_evaluation(threshold.metric_type, "triggered")

        async with self._alerts.similarity_lock(
            threshold.brand_id, threshold.metric_type, threshold.threshold_value,
        ) as conn:
            if await self._suppression.should_suppress(result, conn=conn):
                result.suppressed = True
                metrics.record_alert_suppressed(threshold.metric_type)
                return result

            alert = build_alert(threshold, result.current_value, result.severity, snapshot)
            result.alert = await self._alerts.create(alert, conn=conn)

        metrics.record_alert_created(result.alert.severity)
        logger.info(
            "Alert %s created: brand=%s metric=%s severity=%s value=%.2f threshold=%.2f",
            result.alert.id,
            threshold.brand_id,
            threshold.metric_type,
            result.severity,
            result.current_value,
            threshold.threshold_value,
        )
        await self._enqueue(result.alert)
        return result

    async def evaluate_thresholds(self, snapshot: MetricSnapshot) -> list[AlertEvaluationResult]:
        """Evaluate every active threshold of the snapshot's brand.

        An invalid or orphaned threshold is logged and reported through the ``error``
        field of its result; the rest of the batch still runs.

        Args:
            snapshot: Current metrics for one brand.

        Returns:
            One result per active threshold, in store order.
        """
        with traced(self._tracer, "alerts.evaluate_thresholds", {"brand_id": snapshot.brand_id}):
            thresholds = await self._thresholds.list_active(snapshot.brand_id)
            results: list[AlertEvaluationResult] = []

            for threshold in thresholds:
                try:
                    results.append(await self.evaluate_threshold(threshold, snapshot))
                except (ValidationError, NotFoundError) as e:
                    logger.error(
                        "Skipping threshold %s for brand %s: %s",
                        threshold.id, snapshot.brand_id, e,
                    )
                    results.append(
                        AlertEvaluationResult(
                            triggered=False,
                            threshold=threshold,
                            current_value=0.0,
                            severity="low",
                            error=str(e),
                        )
                    )

            created = sum(1 for r in results if r.alert is not None)
            suppressed = sum(1 for r in results if r.suppressed)
            logger.info(
                "Evaluated %d thresholds for brand %s: %d alerts created, %d suppressed",
                len(results), snapshot.brand_id, created, suppressed,
            )
            return results

    async def _enqueue(self, alert: Alert) -> None:
        """Queue delivery of an alert; failures are logged, never raised."""
        if self._queue is None:
            return
        try:
            await self._queue.enqueue(alert.id, alert.brand_id, alert.severity)
        except Exception as e:
            logger.error("Failed to enqueue alert %s for delivery: %s", alert.id, e)

    async def get_alert(self, alert_id: str) -> Alert:
        """Raises NotFoundError if the alert is absent."""
        alert = await self._alerts.get_by_id(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert with ID {alert_id} not found")
        return alert

    async def acknowledge(self, alert_id: str, user_id: str) -> Alert:
        alert = await self._alerts.acknowledge(alert_id, user_id)
        logger.info("Alert %s acknowledged by %s", alert_id, user_id)
        return alert

    async def resolve(self, alert_id: str) -> Alert:
        alert = await self._alerts.resolve(alert_id)
        logger.info("Alert %s resolved", alert_id)
        return alert

    async def list_alerts(
        self,
        brand_id: str,
        *,
        severity: str | None = None,
        acknowledged: bool | None = None,
        resolved: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        return await self._alerts.list_for_brand(
            brand_id,
            severity=severity,
            acknowledged=acknowledged,
            resolved=resolved,
            limit=limit,
            offset=offset,
        )

    async def statistics(self, brand_id: str) -> AlertStatistics:
        return await self._alerts.statistics(brand_id)

    async def cleanup(self, days_old: int | None = None, dry_run: bool = False) -> int:
        """Delete alerts resolved more than ``days_old`` days ago.

        Args:
            days_old: Retention in days (defaults to ``config.cleanup_days``).
            dry_run: Only count what would be deleted.

        Returns:
            Number of alerts deleted (or that would be deleted).
        """
        days = days_old if days_old is not None else self._config.cleanup_days
        if days < 0:
            raise ValidationError(f"days_old must be non-negative, got {days}")
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        if dry_run:
            return await self._alerts.count_resolved_before(cutoff)

        deleted = await self._alerts.delete_resolved_before(cutoff)
        logger.info("Cleaned up %d alerts resolved before %s", deleted, cutoff.isoformat())
        return deleted
