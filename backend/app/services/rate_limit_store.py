"""
OrgTrack Backend — Rate Limit Counter Stores
=============================================

What:  Storage for per-client request counters used by RateLimitMiddleware.
How:   A single atomic operation, hit(), records a request and compares the
       window count against the limit in one step, so concurrent requests
       from the same client can never undercount.

Algorithm: Sliding Window Log
    1. Each key owns the timestamps of its accepted requests
    2. On each hit, timestamps older than the window are dropped
    3. If the remaining count is already at the limit, the hit is rejected
       (and NOT recorded)
    4. Otherwise the current timestamp is recorded and the hit is allowed

Implementations:
    - MemoryRateLimitStore: per-process dict guarded by an asyncio.Lock.
      Counters are lost on restart and are not shared between workers.
    - RedisRateLimitStore: sorted set per key, updated by one Lua script;
      shared by every instance pointing at the same Redis.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one hit() call."""

    allowed: bool
    count: int  # requests counted in the window, including this one when allowed
    limit: int
    reset_after: int  # seconds until the oldest counted request leaves the window

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class RateLimitStore(ABC):
    """Interface for rate limit counter storage."""

    @abstractmethod
    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """
        Atomically record a request for `key` and decide whether it is allowed.

        Args:
            key: Client identity (the client address)
            limit: Maximum accepted requests per window
            window_seconds: Window length

        Returns:
            RateLimitResult; allowed is False once `limit` requests are
            already counted inside the window.
        """
        ...

    async def reset(self, key: str) -> None:
        """Forget every counted request for `key`."""
        return None

    async def close(self) -> None:
        return None


class MemoryRateLimitStore(RateLimitStore):
    """
    In-process sliding window store.

    Safe for a single uvicorn process serving many concurrent requests:
    every read-modify-write of the counters runs under one asyncio.Lock.
    """

    # Prune keys with no live timestamps every N hits
    CLEANUP_EVERY = 1000

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._hits = 0

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            window_start = now - window_seconds

            timestamps = [ts for ts in self._requests[key] if ts > window_start]

            if len(timestamps) >= limit:
                self._requests[key] = timestamps
                reset_after = int(timestamps[0] + window_seconds - now) + 1
                return RateLimitResult(
                    allowed=False,
                    count=len(timestamps),
                    limit=limit,
                    reset_after=reset_after,
                )

            timestamps.append(now)
            self._requests[key] = timestamps

            self._hits += 1
            if self._hits % self.CLEANUP_EVERY == 0:
                self._cleanup_inactive_keys(window_start)

            return RateLimitResult(
                allowed=True,
                count=len(timestamps),
                limit=limit,
                reset_after=int(timestamps[0] + window_seconds - now) + 1,
            )

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._requests.pop(key, None)

    def _cleanup_inactive_keys(self, window_start: float) -> None:
        """Drops keys whose newest request is already outside the window."""
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))


# Trims the window, then records the hit only when there is room for it.
# Returns {allowed, count, oldest score}; the score is sent back as a string
# because Redis truncates Lua numbers to integers.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    redis.call('EXPIRE', key, window + 1)
    count = count + 1
    allowed = 1
end

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = ARGV[1]
if oldest[2] then
    oldest_score = oldest[2]
end
return {allowed, count, tostring(oldest_score)}
"""


class RedisRateLimitStore(RateLimitStore):
    """
    Redis-backed sliding window store for multi-instance deployments.

    Each key is a sorted set of request markers scored by timestamp. The
    whole check runs server-side as one Lua script, so the trim, the count
    and the conditional add happen atomically and a rejected request never
    leaves a marker behind, even briefly.
    """

    def __init__(self, redis_client, key_prefix: str = "orgtrack:ratelimit:"):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._script = redis_client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        from redis import asyncio as redis_asyncio

        return cls(redis_asyncio.from_url(url, decode_responses=True))

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = time.time()
        member = f"{now}:{uuid.uuid4().hex}"

        allowed, count, oldest_score = await self._script(
            keys=[self._key(key)],
            args=[repr(now), window_seconds, limit, member],
        )

        reset_after = int(float(oldest_score) + window_seconds - now) + 1
        if not allowed:
            logger.debug("Rate limit rejected key %s (%d/%d)", key, int(count), limit)

        return RateLimitResult(
            allowed=bool(allowed), count=int(count), limit=limit, reset_after=reset_after
        )

    async def reset(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def close(self) -> None:
        await self.redis.aclose()


def build_rate_limit_store(backend: str, redis_url: str) -> RateLimitStore:
    """Selects the store named by the RATE_LIMIT_BACKEND setting."""
    if backend == "redis":
        logger.info("Rate limiting backed by Redis at %s", redis_url.split("@")[-1])
        return RedisRateLimitStore.from_url(redis_url)
    return MemoryRateLimitStore()
