"""Per-caller throttling for attempt writes.

Starting, answering and submitting share one token bucket per caller.
Routes opt in with ``dependencies=[Depends(require_rate_limit())]``;
everything else is unthrottled.

The caller is the bearer token's subject when one can be read, otherwise
the client address.  The subject is taken from the unverified payload:
require_user still rejects a forged token, and a forger only drains a
bucket of their own.
"""

from __future__ import annotations

import logging

import jwt as pyjwt
from fastapi import HTTPException, Request, Response, status

from lms.core.metrics import RATE_LIMIT_HITS
from lms.db.redis import redis_pool
from lms.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

rate_limiter: RateLimiter = (
    RedisRateLimiter(redis_pool) if redis_pool is not None else InMemoryRateLimiter()
)

# 30 burst, one token every two seconds.
ATTEMPT_LIMIT = RateLimitConfig(capacity=30, refill_rate=0.5)


def _unverified_subject(request: Request) -> str | None:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        sub = pyjwt.decode(token, options={"verify_signature": False}).get("sub")
    except pyjwt.InvalidTokenError:
        return None
    return str(sub) if sub else None


def caller_identity(request: Request) -> tuple[str, str]:
    """Return ``(key_type, identity)``; key_type is ``user`` or ``ip``."""
    sub = _unverified_subject(request)
    if sub is not None:
        return "user", sub
    return "ip", request.client.host if request.client else "unknown"


def _quota_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining if result.allowed else 0),
    }


def require_rate_limit(config: RateLimitConfig = ATTEMPT_LIMIT):
    async def _check(request: Request, response: Response) -> None:
        key_type, identity = caller_identity(request)
        result = await rate_limiter.check(f"{key_type}:{identity}", config)
        headers = _quota_headers(result)
        if result.allowed:
            response.headers.update(headers)
            return

        RATE_LIMIT_HITS.labels(key_type=key_type).inc()
        logger.warning(
            "Rate limit exceeded for %s %s on %s",
            key_type,
            identity,
            request.url.path,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={**headers, "Retry-After": str(int(result.retry_after) + 1)},
        )

    return _check
