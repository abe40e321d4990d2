"""
Durable Redis-backed alert job queue.

Layout (all keys prefixed with ``QueueConfig.queue_name``):

- ``:jobs``     hash job_id -> JSON job payload
- ``:ready``    sorted set scored ``priority * 1e13 + seq`` so the lowest
                priority number wins and ties dequeue in enqueue order
- ``:delayed``  sorted set scored by the epoch-ms time a retry becomes due
- ``:leases``   sorted set scored by the epoch-ms lease deadline of
                dequeued jobs; expired leases are reclaimed like XAUTOCLAIM
- ``:failed``   list of exhausted jobs (newest first), the dead letter queue
- ``:seq``      counter feeding the FIFO tie-breaker

Claiming runs as a single Lua script so promotion, reclaim and pop are
atomic across worker processes.
"""

import json
import logging
import time
from typing import Any

import redis.asyncio as redis

from brand_alerts.config.settings import get_settings
from brand_alerts.errors import TransientInfraError
from brand_alerts.queues.base import AlertJob, JobQueue
from brand_alerts.queues.config import QueueConfig

logger = logging.getLogger(__name__)

PRIORITY_SCALE = 10_000_000_000_000  # 1e13

# KEYS: ready, delayed, leases, jobs, seq
# ARGV: now_ms, visibility_timeout_ms, batch, priority_scale
CLAIM_SCRIPT = """
local now = tonumber(ARGV[1])
local batch = tonumber(ARGV[3])
local scale = tonumber(ARGV[4])

local function requeue(id)
    local raw = redis.call('HGET', KEYS[4], id)
    if raw then
        local job = cjson.decode(raw)
        local seq = redis.call('INCR', KEYS[5])
        redis.call('ZADD', KEYS[1], string.format('%.0f', job['priority'] * scale + seq), id)
    end
end

for _, key in ipairs({KEYS[2], KEYS[3]}) do
    local due = redis.call('ZRANGEBYSCORE', key, '-inf', now, 'LIMIT', 0, batch)
    for _, id in ipairs(due) do
        redis.call('ZREM', key, id)
        requeue(id)
    end
end

while true do
    local head = redis.call('ZRANGE', KEYS[1], 0, 0)
    if #head == 0 then
        return false
    end
    local id = head[1]
    redis.call('ZREM', KEYS[1], id)
    local raw = redis.call('HGET', KEYS[4], id)
    if raw then
        local job = cjson.decode(raw)
        job['attempts'] = (job['attempts'] or 0) + 1
        raw = cjson.encode(job)
        redis.call('HSET', KEYS[4], id, raw)
        redis.call('ZADD', KEYS[3], now + tonumber(ARGV[2]), id)
        return raw
    end
end
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


class RedisJobQueue(JobQueue):
    """
    Redis sorted-set priority queue with leases, delayed retries and a
    failed list.

    Usage:
        queue = RedisJobQueue()
        await queue.connect()

        await queue.enqueue(alert.id, alert.brand_id, alert.severity)

        job = await queue.dequeue()
        await queue.ack(job)
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        redis_url: str | None = None,
        redis_client: redis.Redis | None = None,
    ):
        """
        Initialize the queue.

        Args:
            config: Queue configuration
            redis_url: Redis connection URL (defaults to settings.redis_url)
            redis_client: Pre-built client (skips connect-time creation)
        """
        super().__init__(config)
        self._redis_url = redis_url or str(get_settings().redis_url)
        self._redis: redis.Redis | None = redis_client
        self._owns_client = redis_client is None
        self._claim: Any = None

        name = self._config.queue_name
        self._jobs_key = f"{name}:jobs"
        self._ready_key = f"{name}:ready"
        self._delayed_key = f"{name}:delayed"
        self._leases_key = f"{name}:leases"
        self._failed_key = f"{name}:failed"
        self._seq_key = f"{name}:seq"

    async def connect(self) -> None:
        """Create the Redis client and register the claim script."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        self._claim = self._redis.register_script(CLAIM_SCRIPT)
        logger.info(f"Connected to Redis, queue={self._config.queue_name}")

    async def close(self) -> None:
        """Close the Redis client if this queue created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.close()
            self._redis = None
            logger.info(f"Redis connection closed for queue {self._config.queue_name}")

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    async def _push(self, job: AlertJob) -> None:
        try:
            seq = await self.redis.incr(self._seq_key)
            pipe = self.redis.pipeline(transaction=True)
            pipe.hset(self._jobs_key, job.job_id, job.to_json())
            pipe.zadd(
                self._ready_key,
                {job.job_id: job.priority * PRIORITY_SCALE + seq},
            )
            await pipe.execute()
        except redis.ConnectionError as e:
            raise TransientInfraError(f"Queue unavailable: {e}") from e

    async def dequeue(self) -> AlertJob | None:
        if self._claim is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        try:
            raw = await self._claim(
                keys=[
                    self._ready_key,
                    self._delayed_key,
                    self._leases_key,
                    self._jobs_key,
                    self._seq_key,
                ],
                args=[
                    _now_ms(),
                    self._config.visibility_timeout_ms,
                    self._config.reclaim_batch_size,
                    PRIORITY_SCALE,
                ],
            )
        except redis.ConnectionError as e:
            raise TransientInfraError(f"Queue unavailable: {e}") from e

        if not raw:
            return None

        try:
            return AlertJob.from_json(raw)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Failed to parse alert job payload {raw!r}: {e}")
            await self.redis.lpush(
                self._failed_key,
                json.dumps({"raw": raw, "error": str(e), "failedAt": time.time()}),
            )
            return None

    async def ack(self, job: AlertJob) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._leases_key, job.job_id)
        pipe.hdel(self._jobs_key, job.job_id)
        await pipe.execute()
        logger.debug(f"Acknowledged alert job {job.job_id}")

    async def _schedule_retry(self, job: AlertJob, delay_ms: int) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._leases_key, job.job_id)
        pipe.hset(self._jobs_key, job.job_id, job.to_json())
        pipe.zadd(self._delayed_key, {job.job_id: _now_ms() + delay_ms})
        await pipe.execute()

    async def _mark_failed(self, job: AlertJob, error: str) -> None:
        record = {**job.to_fields(), "error": error, "failedAt": time.time()}
        pipe = self.redis.pipeline(transaction=True)
        pipe.zrem(self._leases_key, job.job_id)
        pipe.hdel(self._jobs_key, job.job_id)
        pipe.lpush(self._failed_key, json.dumps(record))
        pipe.ltrim(self._failed_key, 0, self._config.failed_max_length - 1)
        await pipe.execute()
        logger.warning(f"Moved alert job {job.job_id} to failed list: {error}")

    async def depth(self) -> int:
        pipe = self.redis.pipeline(transaction=False)
        pipe.zcard(self._ready_key)
        pipe.zcard(self._delayed_key)
        ready, delayed = await pipe.execute()
        return int(ready) + int(delayed)

    async def failed_jobs(self, limit: int = 100) -> list[AlertJob]:
        entries = await self.redis.lrange(self._failed_key, 0, limit - 1)
        jobs: list[AlertJob] = []
        for raw in entries:
            try:
                jobs.append(AlertJob.from_json(raw))
            except (KeyError, ValueError, TypeError):
                logger.debug(f"Skipping unparseable failed entry {raw!r}")
        return jobs

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
