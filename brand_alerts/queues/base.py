"""
Job queue abstraction for alert processing.

Every created alert becomes an ``AlertJob`` whose priority is the severity
rank (critical first). Implementations must:
- dequeue lower priority numbers first, FIFO within a priority tier
- count an attempt each time a job is dequeued
- return a dequeued job to the queue if it is neither acknowledged nor
  failed within the visibility timeout
- retry failed jobs with exponential delay until the attempt budget is
  spent, then move them to a failed list and never retry them again

``InMemoryJobQueue`` serves tests and single-process runs,
``RedisJobQueue`` is the durable production backend.
"""

import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

from brand_alerts.observability.tracing import TRACE_PARENT_FIELD, inject_trace_context
from brand_alerts.queues.backoff import ExponentialBackoff, retry_delay_ms
from brand_alerts.queues.config import QueueConfig

logger = logging.getLogger(__name__)

# Lower number = dequeued first
SEVERITY_PRIORITY: dict[str, int] = {
    "critical": 1,
    "high": 2,
    "medium": 3,
    "low": 4,
}
DEFAULT_PRIORITY = 5


def priority_for_severity(severity: str) -> int:
    """Queue priority for a severity (unknown severities sort last)."""
    return SEVERITY_PRIORITY.get(severity, DEFAULT_PRIORITY)


@dataclass
class AlertJob:
    """Alert processing job.

    Serialized with camelCase keys (``alertId``, ``brandId``, ``severity``)
    so other consumers of the queue can read it.
    """

    alert_id: str
    brand_id: str
    severity: str
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    priority: int = 0
    attempts: int = 0
    enqueued_at: float = field(default_factory=time.time)
    traceparent: str | None = None
    last_error: str | None = None

    def __post_init__(self) -> None:
        if not self.priority:
            self.priority = priority_for_severity(self.severity)

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "jobId": self.job_id,
            "alertId": self.alert_id,
            "brandId": self.brand_id,
            "severity": self.severity,
            "priority": self.priority,
            "attempts": self.attempts,
            "enqueuedAt": self.enqueued_at,
        }
        if self.traceparent:
            fields[TRACE_PARENT_FIELD] = self.traceparent
        if self.last_error:
            fields["lastError"] = self.last_error
        return fields

    def to_json(self) -> str:
        return json.dumps(self.to_fields())

    @classmethod
    def from_fields(cls, fields: dict[str, Any]) -> "AlertJob":
        return cls(
            job_id=fields["jobId"],
            alert_id=fields["alertId"],
            brand_id=fields["brandId"],
            severity=fields["severity"],
            priority=int(fields.get("priority") or 0),
            attempts=int(fields.get("attempts") or 0),
            enqueued_at=float(fields.get("enqueuedAt") or time.time()),
            traceparent=fields.get(TRACE_PARENT_FIELD),
            last_error=fields.get("lastError"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AlertJob":
        return cls.from_fields(json.loads(raw))


class JobQueue(ABC):
    """
    Abstract priority job queue with retry and failed-job handling.

    Subclasses implement storage primitives; retry policy lives here so
    every backend retries identically.

    Usage:
        async with RedisJobQueue() as queue:
            await queue.enqueue(alert.id, alert.brand_id, alert.severity)

            async for job in queue.consume():
                try:
                    await handle(job)
                    await queue.ack(job)
                except Exception as e:
                    await queue.fail(job, str(e))
    """

    def __init__(self, config: QueueConfig | None = None):
        self._config = config or QueueConfig()

    @property
    def config(self) -> QueueConfig:
        return self._config

    async def connect(self) -> None:
        """Open backend connections (no-op by default)."""

    async def close(self) -> None:
        """Release backend connections (no-op by default)."""

    async def __aenter__(self) -> "JobQueue":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def _push(self, job: AlertJob) -> None:
        """Make a job ready behind every queued job of the same priority."""
        ...

    @abstractmethod
    async def dequeue(self) -> AlertJob | None:
        """
        Claim the next ready job.

        Increments ``attempts`` and leases the job for the visibility
        timeout. Returns None when nothing is ready.
        """
        ...

    @abstractmethod
    async def ack(self, job: AlertJob) -> None:
        """Remove a successfully processed job."""
        ...

    @abstractmethod
    async def _schedule_retry(self, job: AlertJob, delay_ms: int) -> None:
        """Release the lease and make the job ready again after ``delay_ms``."""
        ...

    @abstractmethod
    async def _mark_failed(self, job: AlertJob, error: str) -> None:
        """Release the lease and move the job to the failed list."""
        ...

    @abstractmethod
    async def depth(self) -> int:
        """Jobs waiting to run (ready plus delayed retries)."""
        ...

    @abstractmethod
    async def failed_jobs(self, limit: int = 100) -> list[AlertJob]:
        """Most recently failed jobs, newest first."""
        ...

    async def enqueue(self, alert_id: str, brand_id: str, severity: str) -> AlertJob:
        """
        Queue an alert for notification processing.

        The current trace context travels with the job so the worker span
        links to the evaluation that created the alert.

        Args:
            alert_id: Persisted alert ID
            brand_id: Brand the alert belongs to
            severity: Alert severity (sets priority)

        Returns:
            The queued job
        """
        job = AlertJob(
            alert_id=alert_id,
            brand_id=brand_id,
            severity=severity,
            traceparent=inject_trace_context().get(TRACE_PARENT_FIELD),
        )
        await self._push(job)
        logger.debug(
            f"Enqueued alert job {job.job_id} for alert {alert_id} "
            f"(priority={job.priority})"
        )
        return job

    async def fail(self, job: AlertJob, error: str, retryable: bool = True) -> bool:
        """
        Record a failed attempt.

        Schedules a retry after ``base * 2^(attempts-1)`` ms while attempts
        remain, otherwise moves the job to the failed list.

        Args:
            job: Job whose handler raised
            error: Failure description
            retryable: False sends the job straight to the failed list

        Returns:
            True if a retry was scheduled, False if the job is now failed
        """
        job.last_error = error

        if not retryable or job.attempts >= self._config.max_attempts:
            await self._mark_failed(job, error)
            logger.error(
                f"Alert job {job.job_id} failed permanently after "
                f"{job.attempts} attempts: {error}",
                extra={"job": job.to_fields()},
            )
            return False

        delay_ms = retry_delay_ms(job.attempts, self._config.retry_base_delay_ms)
        await self._schedule_retry(job, delay_ms)
        logger.warning(
            f"Alert job {job.job_id} attempt {job.attempts}/"
            f"{self._config.max_attempts} failed, retrying in {delay_ms}ms: {error}"
        )
        return True

    async def consume(
        self,
        poll_interval: float = 1.0,
        stop: asyncio.Event | None = None,
    ) -> AsyncIterator[AlertJob]:
        """
        Yield jobs as they become ready.

        Sleeps ``poll_interval`` seconds when the queue is empty and backs
        off exponentially while the backend is unreachable. Returns once
        ``stop`` is set.

        Yields:
            Claimed jobs; the caller must ``ack`` or ``fail`` each one
        """
        backoff = ExponentialBackoff(
            base_delay=self._config.backoff_base_delay,
            max_delay=self._config.backoff_max_delay,
        )

        while stop is None or not stop.is_set():
            try:
                job = await self.dequeue()
            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping gracefully")
                break
            except Exception as e:
                delay = backoff.next_delay()
                logger.error(f"Error dequeuing jobs, retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
                continue

            backoff.reset()
            if job is None:
                await asyncio.sleep(poll_interval)
                continue
            yield job

    async def health_check(self) -> bool:
        """Check if the backend is reachable."""
        return True
