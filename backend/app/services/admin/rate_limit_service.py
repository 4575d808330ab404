"""Fixed-window rate limiting keyed by administrator and action."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request, Response

from ...auth.gate import authenticate
from ...auth.identity import AuthContext
from ...dependencies import get_rate_limiter
from ...domain.ports.rate_limit import BucketState, RateLimitStore
from ...errors import RateLimitExceeded
from ...infrastructure.redis import RedisClient

logger = logging.getLogger("oursociety.ratelimit")

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_MS = 60_000

MsClock = Callable[[], int]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at_ms: int
    limit: int
    retry_after_seconds: int


def bucket_key(admin_id: str, action: str) -> str:
    return f"{admin_id}:{action}"


class InMemoryRateLimitStore:
    """Process-local counters. Each hit is one synchronous step."""

    def __init__(self) -> None:
        self._buckets: dict[str, BucketState] = {}

    async def hit(self, key: str, now_ms: int, window_ms: int) -> BucketState:
        bucket = self._buckets.get(key)
        if bucket is None or now_ms >= bucket.window_start_ms + window_ms:
            bucket = BucketState(count=1, window_start_ms=now_ms, window_ms=window_ms)
        else:
            bucket = BucketState(
                count=bucket.count + 1,
                window_start_ms=bucket.window_start_ms,
                window_ms=window_ms,
            )
        self._buckets[key] = bucket
        return bucket

    async def sweep(self, now_ms: int) -> int:
        stale = [key for key, bucket in self._buckets.items() if now_ms >= bucket.reset_at_ms]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._buckets)


class RedisRateLimitStore:
    """Counters shared across instances; Redis key TTLs drop idle buckets."""

    KEY_PREFIX = "admin_rate_limit:"

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    async def hit(self, key: str, now_ms: int, window_ms: int) -> BucketState:
        count, window_start = await self._client.hit_window(f"{self.KEY_PREFIX}{key}", now_ms, window_ms)
        return BucketState(count=count, window_start_ms=window_start, window_ms=window_ms)

    async def sweep(self, now_ms: int) -> int:
        return 0


class RateLimiter:
    def __init__(self, store: RateLimitStore, *, clock: MsClock = _now_ms) -> None:
        self._store = store
        self._clock = clock

    async def check_rate_limit(
        self,
        admin_id: str,
        action: str,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitResult:
        """Count this call and report whether it is within the limit.

        Every call counts, including ones that are denied. A window ends
        window_ms after it started, measured with this call's window_ms.
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")

        now = self._clock()
        bucket = await self._store.hit(bucket_key(admin_id, action), now, window_ms)
        result = RateLimitResult(
            allowed=bucket.count <= limit,
            remaining=max(0, limit - bucket.count),
            reset_at_ms=bucket.reset_at_ms,
            limit=limit,
            retry_after_seconds=max(0, -(-(bucket.reset_at_ms - now) // 1000)),
        )
        if not result.allowed:
            logger.warning(
                "Rate limit exceeded admin=%s action=%s count=%d limit=%d",
                admin_id,
                action,
                bucket.count,
                limit,
            )
        return result

    async def sweep(self) -> int:
        removed = await self._store.sweep(self._clock())
        if removed:
            logger.debug("Swept %d stale rate limit buckets", removed)
        return removed


def _apply_headers(response: Response, result: RateLimitResult) -> None:
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(result.reset_at_ms // 1000)


def admin_rate_limit(
    action: str,
    limit: int = DEFAULT_LIMIT,
    window_ms: int = DEFAULT_WINDOW_MS,
) -> Callable:
    """Build a dependency that rate limits the authenticated admin for one action."""

    async def dependency(
        request: Request,
        response: Response,
        context: AuthContext = Depends(authenticate),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitResult:
        result = await limiter.check_rate_limit(context.admin_id, action, limit, window_ms)
        _apply_headers(response, result)
        request.state.rate_limit = result
        if not result.allowed:
            raise RateLimitExceeded(
                "Too many requests. Please try again later.",
                details={
                    "action": action,
                    "limit": result.limit,
                    "reset_at": result.reset_at_ms // 1000,
                    "retry_after": result.retry_after_seconds,
                },
            )
        return result

    return dependency
