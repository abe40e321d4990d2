"""
Alert worker - consumes alert jobs and delivers notifications.

Runs as a standalone service that:
1. Claims alert jobs from the priority queue (critical first)
2. Loads the alert and the threshold that raised it from PostgreSQL
3. Routes the alert to each of the threshold's channels, one at a time
4. Acknowledges the job, or hands it back to the queue for retry
"""

import asyncio
import time
from typing import Any

import redis.asyncio as redis
import structlog

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.config.settings import get_settings
from brand_alerts.errors import NotFoundError
from brand_alerts.notifications.channels import (
    EmailSender,
    InAppSender,
    SmsSender,
    WebhookSender,
)
from brand_alerts.notifications.config import NotificationConfig
from brand_alerts.notifications.preferences import PreferenceRepository
from brand_alerts.notifications.router import NotificationRouter
from brand_alerts.notifications.schemas import NotificationDelivery
from brand_alerts.notifications.tracker import (
    DeliveryRepository,
    DeliveryTracker,
    InAppNotificationRepository,
)
from brand_alerts.observability.metrics import get_metrics
from brand_alerts.observability.tracing import extract_trace_context, get_tracer, traced
from brand_alerts.queues.backoff import ExponentialBackoff
from brand_alerts.queues.base import AlertJob, JobQueue
from brand_alerts.queues.redis_queue import RedisJobQueue
from brand_alerts.storage.database import Database
from brand_alerts.storage.users import UserDirectory
from brand_alerts.thresholds.repository import ThresholdRepository

logger = structlog.get_logger(__name__)


def build_router(
    database: Database,
    config: NotificationConfig,
    redis_client: Any | None = None,
) -> NotificationRouter:
    """Wire the router with the four standard channel senders."""
    users = UserDirectory(database)
    in_app = InAppNotificationRepository(database)
    tracker = DeliveryTracker(DeliveryRepository(database), in_app)
    senders = [
        EmailSender(config, users),
        SmsSender(config, users),
        WebhookSender(config),
        InAppSender(config, in_app, redis_client),
    ]
    return NotificationRouter(
        preferences=PreferenceRepository(database, config.default_frequency_limit),
        tracker=tracker,
        senders=senders,
        config=config,
    )


class AlertWorker:
    """
    Worker pool that processes alert jobs from the queue.

    ``concurrency`` consumer tasks share one queue. Each job runs to
    completion on one task; the channels of a job are delivered
    sequentially so per-alert delivery order is predictable.

    Features:
    - Priority dequeue (critical before low)
    - Exponential retry through the queue, failed list after exhaustion
    - Supervised restart with backoff on infrastructure failures
    - Trace context continued from the evaluation that created the alert

    Usage:
        worker = AlertWorker()
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: JobQueue | None = None,
        database: Database | None = None,
        router: NotificationRouter | None = None,
        alerts: AlertRepository | None = None,
        thresholds: ThresholdRepository | None = None,
        config: AlertConfig | None = None,
        notification_config: NotificationConfig | None = None,
        concurrency: int | None = None,
    ):
        """
        Initialize the alert worker.

        Args:
            queue: Alert job queue (defaults to the Redis queue)
            database: Database connection (or create from settings)
            router: Notification router (built from the database if omitted)
            alerts: Alert repository (built from the database if omitted)
            thresholds: Threshold repository (built from the database if omitted)
            config: Alert configuration
            notification_config: Channel and policy configuration
            concurrency: Consumer tasks (uses config default)
        """
        self._config = config or AlertConfig()
        self._notification_config = notification_config or NotificationConfig()
        self._queue = queue or RedisJobQueue(self._config.queue_config())
        self._database = database or Database()
        self._router = router
        self._alerts = alerts
        self._thresholds = thresholds
        self._concurrency = concurrency or self._config.worker_concurrency

        self._redis: redis.Redis | None = None
        self._running = False
        self._stop_event = asyncio.Event()
        self._tracer = get_tracer(__name__)

        logger.info("AlertWorker initialized", concurrency=self._concurrency)

    async def _connect_dependencies(self) -> None:
        """Connect to all external dependencies (Redis, DB, queue)."""
        settings = get_settings()

        await self._queue.connect()
        await self._database.connect()

        # Redis client for in-app pub/sub pushes
        self._redis = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )

        if self._alerts is None:
            self._alerts = AlertRepository(self._database)
        if self._thresholds is None:
            self._thresholds = ThresholdRepository(self._database)
        if self._router is None:
            self._router = build_router(
                self._database, self._notification_config, self._redis,
            )

    async def start(self) -> None:
        """
        Start the worker pool with supervised retry loop.

        Automatically reconnects on transient failures using exponential
        backoff. Exits after max_consecutive_failures or on CancelledError.
        """
        self._running = True
        self._stop_event.clear()
        settings = get_settings()
        backoff = ExponentialBackoff(
            base_delay=settings.worker_backoff_base_delay,
            max_delay=settings.worker_backoff_max_delay,
        )

        logger.info("Starting alert worker", concurrency=self._concurrency)

        while self._running:
            try:
                await self._connect_dependencies()
                await self._process_loop()
                if not self._running:
                    break
            except asyncio.CancelledError:
                logger.info("Alert worker cancelled")
                break
            except Exception as e:
                if backoff.attempt >= settings.worker_max_consecutive_failures:
                    logger.error(
                        "Alert worker exceeded max consecutive failures",
                        failures=backoff.attempt,
                        error=str(e),
                    )
                    raise
                delay = backoff.next_delay()
                logger.warning(
                    "Alert worker error, retrying",
                    error=str(e),
                    attempt=backoff.attempt,
                    retry_delay=round(delay, 1),
                )
                await self._cleanup()
                await asyncio.sleep(delay)
            else:
                backoff.reset()

        await self._cleanup()

    async def stop(self) -> None:
        """Stop the worker gracefully after in-flight jobs finish."""
        logger.info("Stopping alert worker")
        self._running = False
        self._stop_event.set()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        await self._queue.close()
        await self._database.close()
        if self._redis:
            await self._redis.close()
            self._redis = None
        logger.info("Alert worker cleaned up")

    async def _process_loop(self) -> None:
        """
        Run ``concurrency`` consumers until stopped or one fails.

        A failing consumer stops its siblings through the stop event, so
        each finishes the job it holds before the loop returns. Consumers
        are only cancelled when the loop itself is cancelled.
        """
        consumers = [
            asyncio.create_task(self._consume(i), name=f"alert-consumer-{i}")
            for i in range(self._concurrency)
        ]
        try:
            await asyncio.wait(consumers, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in consumers:
                task.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)
            raise

        self._stop_event.set()
        results = await asyncio.gather(*consumers, return_exceptions=True)
        if self._running:
            # Re-arm for the supervised restart
            self._stop_event.clear()

        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise errors[0]

    async def _consume(self, consumer_id: int) -> None:
        metrics = get_metrics()
        async for job in self._queue.consume(
            poll_interval=self._config.poll_interval_seconds,
            stop=self._stop_event,
        ):
            await self.process_job(job)

            try:
                metrics.set_queue_depth(self._config.queue_name, await self._queue.depth())
            except Exception:
                pass  # Don't fail on metrics
        logger.debug("Consumer stopped", consumer=consumer_id)

    async def process_job(self, job: AlertJob) -> bool:
        """
        Process one job and settle it with the queue.

        Missing alerts or thresholds fail the job without retry; any other
        error is retried by the queue until attempts run out. If the queue
        cannot be reached to settle the job, the error is logged and the
        lease expiry hands the job back for redelivery.

        Args:
            job: Claimed alert job

        Returns:
            True if the job completed and was acknowledged
        """
        metrics = get_metrics()
        log = logger.bind(
            job_id=job.job_id,
            alert_id=job.alert_id,
            severity=job.severity,
            attempt=job.attempts,
        )
        started = time.monotonic()

        with traced(
            self._tracer,
            "alerts.process_job",
            {"alert_id": job.alert_id, "severity": job.severity},
            parent_context=extract_trace_context(job.to_fields()),
        ):
            try:
                deliveries = await self.handle(job)
            except NotFoundError as e:
                log.error("Alert job references missing data", error=str(e))
                await self._settle_failure(job, str(e), log, retryable=False)
                metrics.record_job("failed")
                return False
            except Exception as e:
                log.warning("Alert job failed", error=str(e))
                retried = await self._settle_failure(job, str(e), log)
                metrics.record_job("retried" if retried else "failed")
                return False

        try:
            await self._queue.ack(job)
        except Exception as e:
            log.error("Could not acknowledge alert job, left to lease expiry", error=str(e))
            metrics.record_job("unacknowledged")
            return False
        latency = time.monotonic() - started
        metrics.record_job("completed", job.severity, latency)
        log.info(
            "Alert job completed",
            deliveries=len(deliveries),
            delivered=sum(1 for d in deliveries if d.status in ("sent", "delivered")),
            duration_ms=round(latency * 1000, 1),
        )
        return True

    async def _settle_failure(
        self,
        job: AlertJob,
        error: str,
        log: Any,
        retryable: bool = True,
    ) -> bool:
        """Hand a failed job back to the queue; returns True if it will be retried."""
        try:
            return await self._queue.fail(job, error, retryable=retryable)
        except Exception as e:
            log.error("Could not settle failed alert job, left to lease expiry", error=str(e))
            return retryable

    async def handle(self, job: AlertJob) -> list[NotificationDelivery]:
        """
        Deliver the job's alert over every channel of its threshold.

        Raises:
            NotFoundError: Alert or threshold no longer exists.
        """
        if self._alerts is None or self._thresholds is None or self._router is None:
            raise RuntimeError("Worker not connected. Call start() first.")

        alert = await self._alerts.get_by_id(job.alert_id)
        if alert is None:
            raise NotFoundError(f"Alert with ID {job.alert_id} not found")
        if alert.alert_threshold_id is None:
            raise NotFoundError(f"Alert {alert.id} has no threshold")

        threshold = await self._thresholds.get_by_id(alert.alert_threshold_id)
        if threshold is None:
            raise NotFoundError(
                f"Alert threshold with ID {alert.alert_threshold_id} not found"
            )

        return await self._router.route_all(
            alert, threshold.notification_channels, threshold.user_id,
        )

    async def run_once(self, max_jobs: int = 100) -> dict[str, int]:
        """
        Drain up to ``max_jobs`` ready jobs without starting the pool.

        Used by the CLI and tests; expects dependencies to be connected.

        Returns:
            Counts of completed and failed jobs
        """
        stats = {"completed": 0, "failed": 0}
        for _ in range(max_jobs):
            job = await self._queue.dequeue()
            if job is None:
                break
            if await self.process_job(job):
                stats["completed"] += 1
            else:
                stats["failed"] += 1
        return stats

    @property
    def is_running(self) -> bool:
        """Check if worker is running."""
        return self._running

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the alert worker.

        Returns:
            Dictionary with health status
        """
        queue_healthy = await self._queue.health_check()
        db_healthy = await self._database.health_check()

        return {
            "running": self._running,
            "concurrency": self._concurrency,
            "queue_healthy": queue_healthy,
            "database_healthy": db_healthy,
        }
