"""
Queue configuration for the alert job queue.

Controls retry budget, retry delay and lease (visibility timeout) behavior
to give at-least-once processing with a failed-job list for exhausted jobs.
"""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Configuration for job queue retry and reclaim behavior.

    Attributes:
        queue_name: Key prefix for every Redis structure the queue owns.

        max_attempts: Total attempts per job. After this many failed
            attempts the job is moved to the failed list and never retried.

        retry_base_delay_ms: Delay before the first retry. Attempt n waits
            ``retry_base_delay_ms * 2^(n-1)`` milliseconds.

        visibility_timeout_ms: Time after which a dequeued job that was
            neither acknowledged nor failed is considered orphaned (worker
            crash) and is returned to the ready queue.

        reclaim_batch_size: Maximum number of delayed or orphaned jobs moved
            back to the ready queue per promotion pass.

        failed_max_length: Cap on the failed list (oldest entries dropped).
    """

    queue_name: str = "alert_processing"
    max_attempts: int = 3
    retry_base_delay_ms: int = 2000
    visibility_timeout_ms: int = 120_000  # 2 minutes
    reclaim_batch_size: int = 50
    failed_max_length: int = 10_000

    # Backoff settings for consume() error recovery
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
