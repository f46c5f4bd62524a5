"""Shared Redis client.

The certificate-render and notification queues and the attempt rate
limiter all live here when REDIS_URL is set, so API instances and the
worker see the same lists and buckets.  With REDIS_URL unset
``redis_pool`` is None and each consumer keeps its state in-process.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlsplit

import redis.asyncio as aioredis

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    aioredis.from_url(SETTINGS.redis_url, decode_responses=True, max_connections=20)
    if SETTINGS.redis_url
    else None
)


def _display_url(url: str) -> str:
    parts = urlsplit(url)
    host = parts.hostname or "?"
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


async def ping_redis() -> str:
    """``ok``, ``degraded`` or ``not_configured``."""
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis() -> AsyncIterator[None]:
    """Check Redis on startup and close the pool on shutdown.

    An unreachable Redis is logged, not fatal: queued side effects and rate
    limiting degrade but progression requests still work.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, queue and rate limiter run in-memory")
        yield
        return
    if await ping_redis() == "ok":
        logger.info("Redis connected: %s", _display_url(SETTINGS.redis_url or ""))
    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
