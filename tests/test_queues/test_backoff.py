"""Tests for backoff helpers."""

from brand_alerts.queues.backoff import ExponentialBackoff, retry_delay_ms


class TestRetryDelay:
    def test_doubles_per_attempt(self):
        assert [retry_delay_ms(n, 2000) for n in (1, 2, 3)] == [2000, 4000, 8000]

    def test_attempt_zero_uses_base(self):
        assert retry_delay_ms(0, 2000) == 2000

    def test_zero_base(self):
        assert retry_delay_ms(3, 0) == 0


class TestExponentialBackoff:
    """Tests for ExponentialBackoff delay calculation."""

    def test_first_delay_is_base(self):
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter_range=0.0)
        assert backoff.next_delay() == 1.0

    def test_delay_doubles_without_jitter(self):
        backoff = ExponentialBackoff(
            base_delay=1.0, max_delay=60.0, multiplier=2.0, jitter_range=0.0
        )
        assert [backoff.next_delay() for _ in range(3)] == [1.0, 2.0, 4.0]

    def test_caps_at_max_delay(self):
        backoff = ExponentialBackoff(
            base_delay=10.0, max_delay=30.0, multiplier=2.0, jitter_range=0.0
        )
        backoff.next_delay()  # 10
        backoff.next_delay()  # 20
        assert backoff.next_delay() == 30.0

    def test_jitter_stays_within_range(self):
        backoff = ExponentialBackoff(base_delay=10.0, max_delay=100.0, jitter_range=0.5)
        delay = backoff.next_delay()
        assert 5.0 <= delay <= 15.0

    def test_jitter_stays_non_negative(self):
        backoff = ExponentialBackoff(base_delay=0.1, max_delay=1.0, jitter_range=1.0)
        for _ in range(50):
            assert backoff.next_delay() >= 0

    def test_reset_restarts_sequence(self):
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter_range=0.0)
        backoff.next_delay()
        backoff.next_delay()
        assert backoff.attempt == 2

        backoff.reset()
        assert backoff.attempt == 0
        assert backoff.next_delay() == 1.0

    def test_injected_jitter_source(self):
        calls = []

        def uniform(low, high):
            calls.append((low, high))
            return high

        backoff = ExponentialBackoff(base_delay=2.0, jitter_range=0.25, uniform=uniform)

        assert backoff.next_delay() == 2.5
        assert calls == [(-0.25, 0.25)]
