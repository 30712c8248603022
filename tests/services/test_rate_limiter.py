"""Tests for the per-tenant send throttle."""

import pytest

from chatbridge.domain.errors import RateLimitError
from chatbridge.services.rate_limiter import RateLimiter
from tests.conftest import make_config


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    def test_sixth_send_in_window_is_rejected_and_window_resets(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)

        for _ in range(5):
            limiter.check(42, max_messages=5, window_minutes=1)
            clock.advance(2)

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check(42, max_messages=5, window_minutes=1)
        assert exc_info.value.status_code == 429

        clock.advance(61)
        limiter.check(42, max_messages=5, window_minutes=1)

    def test_tenants_are_independent(self):
        limiter = RateLimiter(clock=FakeClock())

        limiter.check(1, max_messages=1, window_minutes=1)
        limiter.check(2, max_messages=1, window_minutes=1)

        with pytest.raises(RateLimitError):
            limiter.check(1, max_messages=1, window_minutes=1)

    def test_rejected_send_does_not_consume_a_slot(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        limiter.check(42, max_messages=1, window_minutes=1)

        with pytest.raises(RateLimitError):
            limiter.check(42, max_messages=1, window_minutes=1)

        assert limiter.remaining(42, max_messages=1, window_minutes=1) == 0
        clock.advance(60)
        assert limiter.remaining(42, max_messages=1, window_minutes=1) == 1

    def test_disabled_limit_is_skipped(self):
        limiter = RateLimiter(clock=FakeClock())
        config = make_config(rate_limit_enabled=False, rate_limit_max_messages=0)

        for _ in range(10):
            limiter.acquire(config)

    def test_reset(self):
        limiter = RateLimiter(clock=FakeClock())
        limiter.check(42, max_messages=1, window_minutes=1)

        limiter.reset(42)

        limiter.check(42, max_messages=1, window_minutes=1)
