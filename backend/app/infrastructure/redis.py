"""Redis client for shared admin state.

This module provides async Redis operations for:
- Admin session records and the per-admin active-session pointer
- Fixed-window rate limit counters

Used when STATE_BACKEND=redis so that several API instances see the same
sessions and counters.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Iterable

from redis.asyncio import Redis as AsyncRedis, from_url as async_from_url

logger = logging.getLogger("oursociety.redis")

# KEYS[1] = bucket hash, ARGV[1] = now_ms, ARGV[2] = window_ms
# The key expires once the longest window seen for it has elapsed.
HIT_WINDOW_SCRIPT = """
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local start = tonumber(redis.call('HGET', KEYS[1], 'start'))
local count
if start == nil or now >= start + window then
    start = now
    count = 1
    redis.call('HSET', KEYS[1], 'start', ARGV[1], 'count', 1)
else
    count = redis.call('HINCRBY', KEYS[1], 'count', 1)
end
local ttl = start + window - now
if ttl > redis.call('PTTL', KEYS[1]) then
    redis.call('PEXPIRE', KEYS[1], ttl)
end
return {count, start}
"""


class _RedisLifecycleState(Enum):
    """Lifecycle states for the Redis singleton.

    State transitions:
    - UNINITIALIZED -> INITIALIZED (via init_redis)
    - INITIALIZED -> CLOSED (via close_redis)
    - CLOSED -> INITIALIZED (via init_redis - allows restart)
    """
    UNINITIALIZED = auto()
    INITIALIZED = auto()
    CLOSED = auto()


class RedisClient:
    """Async Redis client wrapping the few primitives the admin stores need."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: AsyncRedis | None = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._redis is None:
            self._redis = async_from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connection established")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def _ensure_connected(self) -> AsyncRedis:
        if self._redis is None:
            await self.connect()
        assert self._redis is not None
        return self._redis

    async def hit_window(self, key: str, now_ms: int, window_ms: int) -> tuple[int, int]:
        """Count one hit against a fixed window counter.

        The counter and its window start live in one hash and are updated by a
        server-side script, so concurrent hits from several instances never
        interleave. The window ends at start + window_ms of this call.

        Args:
            key: Counter key
            now_ms: Caller's clock in epoch milliseconds
            window_ms: Window length in milliseconds

        Returns:
            (count, window_start_ms) after the increment
        """
        redis = await self._ensure_connected()
        count, window_start = await redis.eval(HIT_WINDOW_SCRIPT, 1, key, now_ms, window_ms)
        return int(count), int(window_start)

    async def swap_value(self, key: str, value: str, ttl_ms: int | None = None) -> str | None:
        """SET key value GET: store value and return the previous one atomically."""
        redis = await self._ensure_connected()
        return await redis.set(key, value, px=ttl_ms, get=True)

    async def take_value(self, key: str) -> str | None:
        """GETDEL: remove key and return what it held."""
        redis = await self._ensure_connected()
        return await redis.getdel(key)

    async def set_value(self, key: str, value: str, ttl_ms: int | None = None) -> None:
        redis = await self._ensure_connected()
        await redis.set(key, value, px=ttl_ms)

    async def get_value(self, key: str) -> str | None:
        redis = await self._ensure_connected()
        return await redis.get(key)

    async def get_values(self, keys: list[str]) -> list[str | None]:
        """MGET: read several keys in one atomic round-trip."""
        if not keys:
            return []
        redis = await self._ensure_connected()
        return await redis.mget(keys)

    async def expire_value(self, key: str, ttl_ms: int) -> bool:
        redis = await self._ensure_connected()
        return bool(await redis.pexpire(key, ttl_ms))

    async def add_members(self, key: str, *members: str) -> None:
        redis = await self._ensure_connected()
        await redis.sadd(key, *members)

    async def remove_members(self, key: str, members: Iterable[str]) -> int:
        members = list(members)
        if not members:
            return 0
        redis = await self._ensure_connected()
        return int(await redis.srem(key, *members))

    async def get_members(self, key: str) -> set[str]:
        redis = await self._ensure_connected()
        return set(await redis.smembers(key))

    async def scan_keys(self, pattern: str) -> list[str]:
        redis = await self._ensure_connected()
        return [key async for key in redis.scan_iter(match=pattern)]

    async def ping(self) -> bool:
        redis = await self._ensure_connected()
        return bool(await redis.ping())


# Global instance (created at startup, not at import)
_redis_client: RedisClient | None = None
_redis_state: _RedisLifecycleState = _RedisLifecycleState.UNINITIALIZED
_redis_lock: asyncio.Lock = asyncio.Lock()


async def init_redis(redis_url: str) -> RedisClient:
    """Initialize the global Redis client.

    Idempotent: calling it while already initialized returns the existing
    client. A closed client can be re-initialized.
    """
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state == _RedisLifecycleState.INITIALIZED:
            assert _redis_client is not None
            logger.debug("Redis already initialized, returning existing client")
            return _redis_client

        logger.info("Initializing Redis client (current state: %s)", _redis_state.name)
        _redis_client = RedisClient(redis_url)
        await _redis_client.connect()
        _redis_state = _RedisLifecycleState.INITIALIZED
        logger.info("Redis client initialized successfully")
        return _redis_client


async def close_redis() -> None:
    """Close the global Redis client. Safe to call repeatedly."""
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state != _RedisLifecycleState.INITIALIZED:
            logger.debug("Redis not initialized (state: %s), nothing to close", _redis_state.name)
            return

        logger.info("Closing Redis client")
        if _redis_client is not None:
            await _redis_client.disconnect()
            _redis_client = None
        _redis_state = _RedisLifecycleState.CLOSED
        logger.info("Redis client closed successfully")


def get_redis() -> RedisClient:
    """Get the global async Redis client.

    Raises:
        RuntimeError: If Redis client not initialized
    """
    if _redis_state != _RedisLifecycleState.INITIALIZED or _redis_client is None:
        raise RuntimeError(
            f"Redis client not available (state: {_redis_state.name}). Call init_redis() first."
        )
    return _redis_client


def _reset_for_testing() -> None:
    global _redis_client, _redis_state, _redis_lock
    _redis_client = None
    _redis_state = _RedisLifecycleState.UNINITIALIZED
    _redis_lock = asyncio.Lock()
