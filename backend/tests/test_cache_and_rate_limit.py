"""Tests for the result cache and the fixed-window rate limiter."""

import pytest

from cache import TTLCache
from rate_limit import FixedWindowRateLimiter, client_key


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestTTLCache:
    def test_set_and_get(self):
        cache = TTLCache()
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]
        assert len(cache) == 1

    def test_expiry_is_lazy(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.advance(10)
        assert cache.get("k") == "v"
        clock.advance(0.1)
        assert len(cache) == 1
        assert cache.get("k") is None
        assert len(cache) == 0

    async def test_get_or_compute_calls_loader_once(self):
        cache = TTLCache()
        calls = []

        async def loader():
            calls.append(1)
            return ["row"]

        assert await cache.get_or_compute("k", 60, loader) == ["row"]
        assert await cache.get_or_compute("k", 60, loader) == ["row"]
        assert len(calls) == 1

    async def test_get_or_compute_reloads_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        values = iter(["first", "second"])

        async def loader():
            return next(values)

        assert await cache.get_or_compute("k", 5, loader) == "first"
        clock.advance(6)
        assert await cache.get_or_compute("k", 5, loader) == "second"

    async def test_loader_errors_are_not_cached(self):
        cache = TTLCache()

        async def failing():
            raise RuntimeError("down")

        async def working():
            return "ok"

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", 60, failing)
        assert await cache.get_or_compute("k", 60, working) == "ok"

    def test_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestRateLimiter:
    def test_31st_request_rejected_with_retry_after(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=30, window_seconds=60, clock=clock)
        for _ in range(30):
            assert limiter.check("brief:1.2.3.4").allowed
        clock.advance(5)
        decision = limiter.check("brief:1.2.3.4")
        assert not decision.allowed
        assert 0 < decision.retry_after_seconds <= 60

    def test_new_window_allows_again(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=30, window_seconds=60, clock=clock)
        for _ in range(31):
            limiter.check("k")
        clock.advance(61)
        assert limiter.check("k").allowed

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
        assert limiter.check("a").allowed
        assert not limiter.check("a").allowed
        assert limiter.check("b").allowed

    def test_retry_after_at_least_one_second(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.check("k")
        clock.advance(59.9)
        assert limiter.check("k").retry_after_seconds == 1


class TestClientKey:
    def test_first_forwarded_address(self):
        assert client_key("203.0.113.9, 10.0.0.1", "widget") == "widget:203.0.113.9"

    def test_missing_header(self):
        assert client_key(None) == "brief:unknown-client"
        assert client_key("  ") == "brief:unknown-client"
