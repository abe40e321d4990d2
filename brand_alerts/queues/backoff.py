"""
Delay policies for the alert pipeline.

Two kinds of waiting happen here. A failed alert job is rescheduled after
a fixed doubling delay (``retry_delay_ms``), so retry times are
predictable and visible in the delayed set. A worker or consumer that
loses Redis or PostgreSQL reconnects on a jittered schedule
(``ExponentialBackoff``) so a fleet of workers does not reconnect in
lockstep.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass, field


def retry_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay before retrying a job that just failed its ``attempt``-th try.

    ``base * 2^(attempt-1)``: 2000, 4000, 8000 ms for the default base.
    """
    return base_delay_ms * (2 ** max(attempt - 1, 0))


@dataclass
class ExponentialBackoff:
    """
    Jittered reconnect delays in seconds.

    The n-th consecutive failure waits ``min(base * multiplier^n, max)``
    scaled by a random factor in ``1 +/- jitter_range``. ``reset()`` after
    a successful connect.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while True:
            try:
                await queue.connect()
                backoff.reset()
            except TransientInfraError:
                await asyncio.sleep(backoff.next_delay())
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter_range: float = 0.5
    uniform: Callable[[float, float], float] = field(default=random.uniform, repr=False)
    _attempt: int = field(default=0, init=False, repr=False)

    @property
    def attempt(self) -> int:
        """Consecutive failures since the last reset."""
        return self._attempt

    def next_delay(self) -> float:
        """Return the next delay and count the failure."""
        delay = min(self.base_delay * self.multiplier ** self._attempt, self.max_delay)
        self._attempt += 1
        factor = 1 + self.uniform(-self.jitter_range, self.jitter_range)
        return max(0.0, delay * factor)

    def reset(self) -> None:
        self._attempt = 0
