"""
Rate Limiting

Fixed-window request counters keyed by client identity, applied per logical
endpoint category before authentication runs (cheapest check first).

Design Decisions:
- The counter table is an explicitly owned store object (app.state.rate_limit_store),
  not a hidden module-level map, so it can be swapped without touching routes
- InMemoryRateLimitStore: per-process, lock-guarded read-modify-write per key
- LimitsRateLimitStore: same contract on top of the `limits` asyncio storage layer, for
  deployments that share counters through redis:// or memcached://
- Each category has its own (max, window) pair and its own counters: a client's
  "write" budget never drains its "read" budget

With the in-memory store and N server processes the effective limit is N times
the configured one. Configure RATE_LIMIT_STORAGE_URI for a shared backend.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request, Response
from limits.storage import storage_from_string

from app.core.exceptions import RateLimitedError

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one counted request. reset_time is a unix timestamp (seconds)."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: float


# Rate limit configurations per endpoint category
RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "public": RateLimitConfig(max_requests=50, window_seconds=60),
    "shorten": RateLimitConfig(max_requests=20, window_seconds=60),
    "read": RateLimitConfig(max_requests=100, window_seconds=60),
    "write": RateLimitConfig(max_requests=30, window_seconds=60),
    "api_keys": RateLimitConfig(max_requests=10, window_seconds=60),
    "qr_code": RateLimitConfig(max_requests=40, window_seconds=60),
    "analytics": RateLimitConfig(max_requests=60, window_seconds=60),
    "default": RateLimitConfig(max_requests=60, window_seconds=60),
}


class RateLimitStore(Protocol):
    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        ...


@dataclass
class _WindowRecord:
    count: int
    reset_time: float


class InMemoryRateLimitStore:
    """
    Per-process fixed-window counters.

    A record is created on the first request from a key and replaced once
    `now > reset_time`. Once the count reaches the limit, further requests are
    refused without incrementing until the window resets.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: Dict[str, _WindowRecord] = {}
        self._lock = threading.Lock()

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        return self.increment(key, config)

    def increment(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            record = self._records.get(key)

            if record is None or now > record.reset_time:
                record = _WindowRecord(count=1, reset_time=now + config.window_seconds)
                self._records[key] = record
                return RateLimitResult(
                    allowed=True,
                    limit=config.max_requests,
                    remaining=config.max_requests - 1,
                    reset_time=record.reset_time,
                )

            if record.count >= config.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_time=record.reset_time,
                )

            record.count += 1
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests - record.count,
                reset_time=record.reset_time,
            )

    def reset(self) -> None:
        """Drop every counter."""
        with self._lock:
            self._records.clear()


def async_storage_uri(storage_uri: str) -> str:
    """Map a limits storage URI to its asyncio variant: redis:// -> async+redis://."""
    if storage_uri.startswith("async+"):
        return storage_uri
    return f"async+{storage_uri}"


class LimitsRateLimitStore:
    """
    Fixed-window counters on a `limits` asyncio storage backend.

    Backend round trips are awaited, so a redis:// or memcached:// store never
    blocks the event loop. The backend increments atomically. Requests over the
    limit still bump the backend counter, but are reported with remaining=0 and
    the unchanged window expiry, so callers observe the same contract as the
    in-memory store.
    """

    def __init__(self, storage_uri: str):
        self.storage_uri = async_storage_uri(storage_uri)
        self._storage = storage_from_string(self.storage_uri)

    async def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        expiry = max(1, int(math.ceil(config.window_seconds)))
        count = await self._storage.incr(key, expiry, amount=1)
        reset_time = await self._storage.get_expiry(key)
        return RateLimitResult(
            allowed=count <= config.max_requests,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - count),
            reset_time=reset_time,
        )

    async def reset(self) -> None:
        await self._storage.reset()


def build_rate_limit_store(storage_uri: str) -> RateLimitStore:
    """
    Build the counter store for a storage URI.

    memory:// keeps the exact per-process semantics; anything else is handed to
    the limits storage layer.
    """
    if storage_uri in ("", "memory://"):
        return InMemoryRateLimitStore()
    logger.info(f"Using shared rate limit storage: {storage_uri.split('://')[0]}")
    return LimitsRateLimitStore(storage_uri)


def get_client_identifier(request: Request) -> str:
    """
    Derive the client identifier used for rate limiting.

    Prefers the first X-Forwarded-For entry, then X-Real-IP, then the socket
    peer, and finally the "unknown" sentinel. Never raises.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def seconds_until_reset(result: RateLimitResult, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    return max(0, int(math.ceil(result.reset_time - now)))


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    """Build the X-RateLimit-* headers for a counted request."""
    reset_at = datetime.fromtimestamp(result.reset_time, tz=timezone.utc)
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(result.reset_time))),
        "X-RateLimit-Reset-Time": reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


def rate_limit(category: str):
    """
    FastAPI dependency factory enforcing the budget of one endpoint category.

    Usage:
        @router.get("/api/analytics", dependencies=[Depends(rate_limit("analytics"))])

    The counted result is kept on request.state so error responses raised later
    in the request still carry the X-RateLimit-* headers.
    """
    config = RATE_LIMITS.get(category, RATE_LIMITS["default"])

    async def dependency(request: Request, response: Response) -> None:
        store: Optional[RateLimitStore] = getattr(request.app.state, "rate_limit_store", None)
        if store is None:
            return

        identifier = get_client_identifier(request)
        result = await store.hit(f"{category}:{identifier}", config)
        request.state.rate_limit = result

        if not result.allowed:
            retry_after = seconds_until_reset(result)
            logger.warning(f"Rate limit exceeded: category={category} client={identifier}")
            raise RateLimitedError(result, retry_after=retry_after)

        for name, value in rate_limit_headers(result).items():
            response.headers[name] = value

    return dependency
