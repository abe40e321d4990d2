"""Tests for AlertWorker job handling."""

import asyncio
import dataclasses
from unittest.mock import AsyncMock

import pytest

from brand_alerts.alerts.config import AlertConfig
from brand_alerts.alerts.repository import AlertRepository
from brand_alerts.alerts.worker import AlertWorker
from brand_alerts.notifications.router import NotificationRouter
from brand_alerts.notifications.schemas import NotificationDelivery
from brand_alerts.queues.config import QueueConfig
from brand_alerts.queues.memory import InMemoryJobQueue
from brand_alerts.thresholds.repository import ThresholdRepository


@pytest.fixture
def queue():
    return InMemoryJobQueue(QueueConfig(max_attempts=3, retry_base_delay_ms=0))


@pytest.fixture
def mock_alerts(sample_alert):
    repo = AsyncMock(spec=AlertRepository)
    repo.get_by_id.return_value = sample_alert
    return repo


@pytest.fixture
def mock_thresholds(sample_threshold):
    repo = AsyncMock(spec=ThresholdRepository)
    repo.get_by_id.return_value = sample_threshold
    return repo


@pytest.fixture
def mock_router():
    router = AsyncMock(spec=NotificationRouter)
    router.route_all.return_value = [
        NotificationDelivery(
            alert_id="alert-001", user_id="user-1", channel="email",
            status="sent", recipient="ana@example.com", content="...",
        ),
    ]
    return router


@pytest.fixture
def worker(queue, mock_database, mock_alerts, mock_thresholds, mock_router):
    return AlertWorker(
        queue=queue,
        database=mock_database,
        router=mock_router,
        alerts=mock_alerts,
        thresholds=mock_thresholds,
        config=AlertConfig(),
        concurrency=1,
    )


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_routes_threshold_channels_and_acks(
        self, worker, queue, mock_router, sample_alert
    ):
        await queue.enqueue("alert-001", "brand-acme", "medium")
        job = await queue.dequeue()

        assert await worker.process_job(job) is True

        mock_router.route_all.assert_awaited_once_with(
            sample_alert, ("email", "in_app"), "user-1",
        )
        assert await queue.depth() == 0
        assert await queue.dequeue() is None

    @pytest.mark.asyncio
    async def test_missing_alert_fails_without_retry(self, worker, queue, mock_alerts):
        mock_alerts.get_by_id.return_value = None
        await queue.enqueue("alert-gone", "brand-acme", "high")
        job = await queue.dequeue()

        assert await worker.process_job(job) is False

        failed = await queue.failed_jobs()
        assert [j.alert_id for j in failed] == ["alert-gone"]
        assert failed[0].attempts == 1
        assert "not found" in failed[0].last_error

    @pytest.mark.asyncio
    async def test_missing_threshold_fails_without_retry(
        self, worker, queue, mock_thresholds
    ):
        mock_thresholds.get_by_id.return_value = None
        await queue.enqueue("alert-001", "brand-acme", "high")

        assert await worker.process_job(await queue.dequeue()) is False
        assert len(await queue.failed_jobs()) == 1

    @pytest.mark.asyncio
    async def test_transient_error_is_retried_then_failed(
        self, worker, queue, mock_router
    ):
        mock_router.route_all.side_effect = ConnectionError("db down")
        await queue.enqueue("alert-001", "brand-acme", "critical")

        stats = await worker.run_once(max_jobs=10)

        assert stats == {"completed": 0, "failed": 3}
        assert mock_router.route_all.await_count == 3
        failed = await queue.failed_jobs()
        assert failed[0].attempts == 3
        assert failed[0].last_error == "db down"

    @pytest.mark.asyncio
    async def test_run_once_processes_in_priority_order(
        self, worker, queue, mock_alerts
    ):
        await queue.enqueue("low-1", "brand-acme", "low")
        await queue.enqueue("crit-1", "brand-acme", "critical")

        stats = await worker.run_once()

        assert stats == {"completed": 2, "failed": 0}
        order = [call.args[0] for call in mock_alerts.get_by_id.await_args_list]
        assert order == ["crit-1", "low-1"]


class TestHandle:
    @pytest.mark.asyncio
    async def test_requires_connected_dependencies(self, queue, mock_database):
        worker = AlertWorker(queue=queue, database=mock_database)
        await queue.enqueue("alert-001", "brand-acme", "low")

        with pytest.raises(RuntimeError):
            await worker.handle(await queue.dequeue())


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_check(self, worker, mock_database):
        mock_database.health_check.return_value = True

        health = await worker.health_check()

        assert health == {
            "running": False,
            "concurrency": 1,
            "queue_healthy": True,
            "database_healthy": True,
        }


# ── Settling and consumer isolation ──────────────────────


class FlakyAckQueue(InMemoryJobQueue):
    """In-memory queue whose ack fails for selected alerts."""

    def __init__(self, failing_alert_ids, **kwargs):
        super().__init__(**kwargs)
        self._failing = set(failing_alert_ids)

    async def ack(self, job):
        if job.alert_id in self._failing:
            raise ConnectionError("redis connection reset")
        await super().ack(job)


@pytest.fixture
def flaky_queue():
    return FlakyAckQueue(
        {"fast"}, config=QueueConfig(max_attempts=3, retry_base_delay_ms=0),
    )


def _pool_worker(queue, mock_database, mock_alerts, mock_thresholds, mock_router):
    return AlertWorker(
        queue=queue,
        database=mock_database,
        router=mock_router,
        alerts=mock_alerts,
        thresholds=mock_thresholds,
        config=AlertConfig(poll_interval_seconds=0.01),
        concurrency=2,
    )


class TestSettleErrors:
    @pytest.mark.asyncio
    async def test_ack_error_is_logged_not_raised(
        self, flaky_queue, mock_database, mock_alerts, mock_thresholds, mock_router
    ):
        worker = _pool_worker(
            flaky_queue, mock_database, mock_alerts, mock_thresholds, mock_router,
        )
        await flaky_queue.enqueue("fast", "brand-acme", "low")

        assert await worker.process_job(await flaky_queue.dequeue()) is False
        assert await flaky_queue.failed_jobs() == []

    @pytest.mark.asyncio
    async def test_fail_error_is_logged_not_raised(
        self, queue, mock_database, mock_alerts, mock_thresholds, mock_router
    ):
        mock_router.route_all.side_effect = RuntimeError("smtp down")
        queue.fail = AsyncMock(side_effect=ConnectionError("redis connection reset"))
        worker = _pool_worker(queue, mock_database, mock_alerts, mock_thresholds, mock_router)
        await queue.enqueue("alert-001", "brand-acme", "high")

        assert await worker.process_job(await queue.dequeue()) is False
        queue.fail.assert_awaited_once()


class TestProcessLoop:
    @pytest.mark.asyncio
    async def test_ack_error_does_not_cancel_in_flight_send(
        self, flaky_queue, mock_database, mock_alerts, mock_thresholds,
        mock_router, sample_alert,
    ):
        finished = []
        cancelled = []

        async def get_alert(alert_id):
            return dataclasses.replace(sample_alert, id=alert_id)

        async def route_all(alert, channels, user_id):
            try:
                if alert.id == "slow":
                    await asyncio.sleep(0.1)
            except asyncio.CancelledError:
                cancelled.append(alert.id)
                raise
            finished.append(alert.id)
            return []

        mock_alerts.get_by_id.side_effect = get_alert
        mock_router.route_all.side_effect = route_all
        worker = _pool_worker(
            flaky_queue, mock_database, mock_alerts, mock_thresholds, mock_router,
        )
        await flaky_queue.enqueue("slow", "brand-acme", "critical")
        await flaky_queue.enqueue("fast", "brand-acme", "low")

        loop_task = asyncio.create_task(worker._process_loop())
        for _ in range(100):
            if len(finished) == 2:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(loop_task, timeout=1.0)

        assert sorted(finished) == ["fast", "slow"]
        assert cancelled == []

    @pytest.mark.asyncio
    async def test_crashed_consumer_lets_sibling_finish(
        self, queue, mock_database, mock_alerts, mock_thresholds, mock_router,
    ):
        finished = []
        worker = _pool_worker(queue, mock_database, mock_alerts, mock_thresholds, mock_router)

        async def process(job):
            if job.alert_id == "fast":
                raise ConnectionError("redis went away")
            await asyncio.sleep(0.05)
            finished.append(job.alert_id)
            return True

        worker.process_job = process
        await queue.enqueue("slow", "brand-acme", "critical")
        await queue.enqueue("fast", "brand-acme", "low")

        with pytest.raises(ConnectionError):
            await worker._process_loop()

        assert finished == ["slow"]
