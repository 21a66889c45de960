"""
Tests for the fixed-window rate limiter.

The in-memory store takes an injectable clock so window expiry is tested
without sleeping.
"""

import threading

import pytest
from limits.aio.storage import Storage as AsyncStorage
from starlette.requests import Request

from app.core.rate_limit import (
    RATE_LIMITS,
    InMemoryRateLimitStore,
    LimitsRateLimitStore,
    RateLimitConfig,
    RateLimitResult,
    async_storage_uri,
    build_rate_limit_store,
    get_client_identifier,
    rate_limit_headers,
    seconds_until_reset,
)

CONFIG = RateLimitConfig(max_requests=3, window_seconds=60)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_request(headers=None, client=("10.0.0.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestInMemoryRateLimitStore:
    """Test the fixed-window state machine."""

    def test_counts_down_then_denies(self):
        """Calls 1-3 are allowed with remaining 2, 1, 0; call 4 is denied."""
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock=clock)

        results = [store.increment("read:1.2.3.4", CONFIG) for _ in range(3)]
        assert [r.allowed for r in results] == [True, True, True]
        assert [r.remaining for r in results] == [2, 1, 0]

        denied = store.increment("read:1.2.3.4", CONFIG)
        assert not denied.allowed
        assert denied.remaining == 0
        assert denied.reset_time == results[0].reset_time == clock.now + 60

    def test_denied_requests_do_not_extend_window(self):
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock=clock)
        first = store.increment("k", CONFIG)
        for _ in range(10):
            clock.now += 1
            store.increment("k", CONFIG)
        assert store.increment("k", CONFIG).reset_time == first.reset_time

    def test_fresh_window_after_reset_time(self):
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock=clock)
        for _ in range(4):
            store.increment("k", CONFIG)

        clock.now += 60.001
        result = store.increment("k", CONFIG)
        assert result.allowed
        assert result.remaining == CONFIG.max_requests - 1
        assert result.reset_time == clock.now + 60

    def test_window_still_closed_exactly_at_reset_time(self):
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock=clock)
        for _ in range(3):
            store.increment("k", CONFIG)
        clock.now += 60
        assert not store.increment("k", CONFIG).allowed

    def test_categories_are_independent(self):
        """Exhausting "write" leaves "read" untouched for the same client."""
        store = InMemoryRateLimitStore(clock=FakeClock())
        for _ in range(4):
            store.increment("write:1.2.3.4", CONFIG)
        assert not store.increment("write:1.2.3.4", CONFIG).allowed

        read = store.increment("read:1.2.3.4", CONFIG)
        assert read.allowed
        assert read.remaining == 2

    def test_concurrent_increments_never_exceed_limit(self):
        store = InMemoryRateLimitStore(clock=FakeClock())
        config = RateLimitConfig(max_requests=50, window_seconds=60)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                result = store.increment("hot", config)
                if result.allowed:
                    with lock:
                        allowed.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(allowed) == 50
        assert sorted(r.remaining for r in allowed) == list(range(50))

    def test_reset_clears_counters(self):
        store = InMemoryRateLimitStore(clock=FakeClock())
        for _ in range(3):
            store.increment("k", CONFIG)
        store.reset()
        assert store.increment("k", CONFIG).remaining == 2


class TestLimitsRateLimitStore:
    @pytest.mark.asyncio
    async def test_memory_backend_enforces_limit(self):
        store = LimitsRateLimitStore("memory://")
        results = [await store.hit("analytics:1.2.3.4", CONFIG) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert all(r.limit == 3 for r in results)
        assert results[-1].reset_time == results[0].reset_time

    def test_uses_asyncio_storage(self):
        store = LimitsRateLimitStore("memory://")
        assert store.storage_uri == "async+memory://"
        assert isinstance(store._storage, AsyncStorage)

    @pytest.mark.parametrize("uri,expected", [
        ("redis://cache:6379", "async+redis://cache:6379"),
        ("memcached://cache:11211", "async+memcached://cache:11211"),
        ("async+redis://cache:6379", "async+redis://cache:6379"),
    ])
    def test_async_storage_uri(self, uri, expected):
        assert async_storage_uri(uri) == expected

    @pytest.mark.asyncio
    async def test_in_memory_store_hit_matches_increment(self):
        store = InMemoryRateLimitStore(clock=FakeClock())
        results = [await store.hit("k", CONFIG) for _ in range(4)]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert not results[-1].allowed

    def test_build_store_picks_backend(self):
        assert isinstance(build_rate_limit_store("memory://"), InMemoryRateLimitStore)
        assert isinstance(build_rate_limit_store(""), InMemoryRateLimitStore)


class TestClientIdentifier:
    def test_prefers_first_forwarded_for_entry(self):
        request = make_request({"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "X-Real-IP": "9.9.9.9"})
        assert get_client_identifier(request) == "1.2.3.4"

    def test_falls_back_to_real_ip(self):
        assert get_client_identifier(make_request({"X-Real-IP": "9.9.9.9"})) == "9.9.9.9"

    def test_falls_back_to_peer(self):
        assert get_client_identifier(make_request()) == "10.0.0.1"

    def test_unknown_sentinel(self):
        assert get_client_identifier(make_request(client=None)) == "unknown"


class TestHeaders:
    def test_rate_limit_headers(self):
        result = RateLimitResult(allowed=True, limit=60, remaining=59, reset_time=1_700_000_000.5)
        headers = rate_limit_headers(result)
        assert headers == {
            "X-RateLimit-Limit": "60",
            "X-RateLimit-Remaining": "59",
            "X-RateLimit-Reset": "1700000001",
            "X-RateLimit-Reset-Time": "2023-11-14T22:13:20.500Z",
        }

    def test_seconds_until_reset_rounds_up(self):
        result = RateLimitResult(allowed=False, limit=3, remaining=0, reset_time=100.2)
        assert seconds_until_reset(result, now=50.0) == 51
        assert seconds_until_reset(result, now=200.0) == 0


@pytest.mark.parametrize("category,limit", [
    ("public", 50),
    ("shorten", 20),
    ("read", 100),
    ("write", 30),
    ("api_keys", 10),
    ("qr_code", 40),
    ("analytics", 60),
    ("default", 60),
])
def test_category_budgets(category, limit):
    assert RATE_LIMITS[category] == RateLimitConfig(max_requests=limit, window_seconds=60)
