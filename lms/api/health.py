"""Liveness and readiness probes.

/health answers 200 whenever the process can respond; ``status`` reports
``degraded`` when a configured backing service does not answer.
/ready answers 503 when PostgreSQL is configured but unreachable, since
no progression request can be served without it.  Redis is not critical
for readiness: side effects are queued best-effort.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from lms.db.engine import ping_database
from lms.db.redis import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await ping_database(),
        "redis": await ping_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await ping_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
