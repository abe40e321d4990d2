"""
In-process job queue.

Same ordering, lease and retry semantics as the Redis backend, kept in
process memory. Nothing survives a restart, so it is meant for tests and
single-process tools.
"""

import heapq
import itertools
import time
from collections.abc import Callable

from brand_alerts.queues.base import AlertJob, JobQueue
from brand_alerts.queues.config import QueueConfig


class InMemoryJobQueue(JobQueue):
    """
    Heap-backed priority queue.

    Args:
        config: Retry and lease configuration
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(config)
        self._clock = clock
        self._seq = itertools.count()
        self._ready: list[tuple[int, int, str]] = []
        self._delayed: dict[str, float] = {}
        self._leases: dict[str, float] = {}
        self._jobs: dict[str, AlertJob] = {}
        self._failed: list[AlertJob] = []

    async def _push(self, job: AlertJob) -> None:
        self._jobs[job.job_id] = job
        heapq.heappush(self._ready, (job.priority, next(self._seq), job.job_id))

    def _promote(self) -> None:
        """Move due retries and expired leases back to the ready heap."""
        now = self._clock()
        for pending in (self._delayed, self._leases):
            due = [job_id for job_id, at in pending.items() if at <= now]
            for job_id in due:
                del pending[job_id]
                job = self._jobs.get(job_id)
                if job is not None:
                    heapq.heappush(
                        self._ready, (job.priority, next(self._seq), job_id)
                    )

    async def dequeue(self) -> AlertJob | None:
        self._promote()
        while self._ready:
            _, _, job_id = heapq.heappop(self._ready)
            job = self._jobs.get(job_id)
            if job is None:
                continue
            job.attempts += 1
            self._leases[job_id] = (
                self._clock() + self._config.visibility_timeout_ms / 1000
            )
            return job
        return None

    async def ack(self, job: AlertJob) -> None:
        self._leases.pop(job.job_id, None)
        self._jobs.pop(job.job_id, None)

    async def _schedule_retry(self, job: AlertJob, delay_ms: int) -> None:
        self._leases.pop(job.job_id, None)
        self._jobs[job.job_id] = job
        self._delayed[job.job_id] = self._clock() + delay_ms / 1000

    async def _mark_failed(self, job: AlertJob, error: str) -> None:
        self._leases.pop(job.job_id, None)
        self._jobs.pop(job.job_id, None)
        self._failed.insert(0, job)
        del self._failed[self._config.failed_max_length:]

    async def depth(self) -> int:
        return len(self._ready) + len(self._delayed)

    async def failed_jobs(self, limit: int = 100) -> list[AlertJob]:
        return self._failed[:limit]
