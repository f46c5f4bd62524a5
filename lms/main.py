"""ASGI entry point: ``uvicorn lms.main:app``."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import APIRouter, FastAPI

from lms.api import (
    admin,
    attempts,
    certifications,
    classes,
    courses,
    health,
    lessons,
    metrics_endpoint,
    notifications,
)
from lms.api.error_handlers import register_exception_handlers
from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.db.engine import lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)

ROUTERS: tuple[APIRouter, ...] = (
    metrics_endpoint.router,
    health.router,
    courses.router,
    lessons.router,
    attempts.router,
    classes.router,
    certifications.router,
    notifications.router,
    admin.router,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # Exit stack unwinds in reverse: Redis closes before the engine.
    async with AsyncExitStack() as stack:
        await stack.enter_async_context(lifespan_db())
        await stack.enter_async_context(lifespan_redis())
        yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="lms-service",
        lifespan=lifespan,
        docs_url="/docs" if SETTINGS.is_dev else None,
        redoc_url="/redoc" if SETTINGS.is_dev else None,
    )
    # Last added runs first, so metrics and handlers already see a request ID.
    application.add_middleware(MetricsMiddleware)
    application.add_middleware(RequestContextMiddleware)
    register_exception_handlers(application)
    for router in ROUTERS:
        application.include_router(router)
    return application


app = create_app()

logger.info(
    "lms-service ready  env=%s port=%d routers=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.port,
    len(ROUTERS),
    "on" if SETTINGS.is_dev else "off",
)
