"""Token-bucket rate limiting for the attempt endpoints.

Each key owns a bucket of ``capacity`` tokens refilled at ``refill_rate``
per second; a request spends one token.  Bursts up to the capacity pass,
the long-run rate is capped by the refill rate.  Only two numbers are
stored per key: the token count and the last refill time.

The in-memory backend is per-process and evicts buckets that have been
idle long enough to be full again.  The Redis backend runs the same
arithmetic in a Lua script so concurrent API instances share one bucket.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float  # seconds until the next token, 0 when allowed


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """capacity = burst size; refill_rate = tokens per second."""

    capacity: int = 60
    refill_rate: float = 1.0

    @property
    def idle_ttl(self) -> int:
        # After this long without traffic a bucket is full again.
        return math.ceil(self.capacity / self.refill_rate) + 60


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


@dataclass(slots=True)
class _Bucket:
    tokens: float
    updated: float
    idle_ttl: int


def _take(bucket: _Bucket, now: float, config: RateLimitConfig) -> RateLimitResult:
    """Refill for the time elapsed, then spend one token if there is one."""
    bucket.tokens = min(
        config.capacity, bucket.tokens + (now - bucket.updated) * config.refill_rate
    )
    bucket.updated = now
    bucket.idle_ttl = config.idle_ttl
    if bucket.tokens < 1:
        return RateLimitResult(
            allowed=False,
            remaining=0,
            limit=config.capacity,
            retry_after=(1 - bucket.tokens) / config.refill_rate,
        )
    bucket.tokens -= 1
    return RateLimitResult(
        allowed=True,
        remaining=int(bucket.tokens),
        limit=config.capacity,
        retry_after=0,
    )


class InMemoryRateLimiter:
    """Per-process buckets; idle ones are swept every ``_SWEEP_EVERY`` checks."""

    _SWEEP_EVERY = 1024

    def __init__(self) -> None:
        self._buckets: dict[str, _Bucket] = {}
        self._checks = 0

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = time.monotonic()
        self._checks += 1
        if self._checks % self._SWEEP_EVERY == 0:
            self._evict_idle(now)
        bucket = self._buckets.setdefault(
            key, _Bucket(tokens=config.capacity, updated=now, idle_ttl=config.idle_ttl)
        )
        return _take(bucket, now, config)

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)

    def clear(self) -> None:
        self._buckets.clear()
        self._checks = 0

    def _evict_idle(self, now: float) -> None:
        for key in [k for k, b in self._buckets.items() if now - b.updated > b.idle_ttl]:
            del self._buckets[key]


class RedisRateLimiter:
    """The same bucket arithmetic in a Lua script, one hash per key.

    Script returns {allowed 0/1, remaining, retry_after_ms}.
    """

    _LUA_SCRIPT = """
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])

    local state = redis.call('HMGET', KEYS[1], 'tokens', 'updated')
    local tokens = tonumber(state[1]) or capacity
    local updated = tonumber(state[2]) or now
    tokens = math.min(capacity, tokens + (now - updated) * rate)

    local allowed = 0
    local retry_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        retry_ms = math.ceil((1 - tokens) / rate * 1000)
    end

    redis.call('HSET', KEYS[1], 'tokens', tokens, 'updated', now)
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[4]))
    return {allowed, math.floor(tokens), retry_ms}
    """

    def __init__(self, redis_client, *, prefix: str = "lms:ratelimit:") -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._script = redis_client.register_script(self._LUA_SCRIPT)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, retry_ms = await self._script(
            keys=[self._prefix + key],
            args=[config.capacity, config.refill_rate, time.time(), config.idle_ttl],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining) if allowed else 0,
            limit=config.capacity,
            retry_after=retry_ms / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._prefix + key)
