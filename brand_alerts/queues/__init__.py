"""
Priority job queues for alert processing.

Classes:
    JobQueue: Abstract queue with shared retry policy
    InMemoryJobQueue: Process-local backend for tests and tools
    RedisJobQueue: Durable Redis backend with leases and a failed list
    AlertJob: Job payload ``{alertId, brandId, severity}``
    QueueConfig: Retry, lease and backoff configuration
    ExponentialBackoff: Jittered backoff for reconnect loops

Example:
    from brand_alerts.queues import RedisJobQueue, QueueConfig

    async with RedisJobQueue(QueueConfig(max_attempts=3)) as queue:
        await queue.enqueue(alert.id, alert.brand_id, alert.severity)
"""

from brand_alerts.queues.backoff import ExponentialBackoff, retry_delay_ms
from brand_alerts.queues.base import (
    SEVERITY_PRIORITY,
    AlertJob,
    JobQueue,
    priority_for_severity,
)
from brand_alerts.queues.config import QueueConfig
from brand_alerts.queues.memory import InMemoryJobQueue
from brand_alerts.queues.redis_queue import RedisJobQueue

__all__ = [
    "AlertJob",
    "ExponentialBackoff",
    "InMemoryJobQueue",
    "JobQueue",
    "QueueConfig",
    "RedisJobQueue",
    "SEVERITY_PRIORITY",
    "priority_for_severity",
    "retry_delay_ms",
]
