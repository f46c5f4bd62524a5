"""Async SQLAlchemy engine and unit-of-work sessions.

With DATABASE_URL set, progression state lives in PostgreSQL (asyncpg)
and every request or worker task runs in one ``session_scope``.  Without
it ``engine`` is None and lms/repos/registry.py hands out the in-memory
repositories instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for every table in lms/db/tables.py."""


engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None

if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit when the block exits, roll back if it raises.

    Racing inserts inside the block run in SAVEPOINTs (see the pg repos),
    so a translated uniqueness violation leaves the outer transaction
    usable.
    """
    if async_session_factory is None:
        raise RuntimeError("DATABASE_URL is not configured, cannot open a session")
    async with async_session_factory() as session:
        try:
            yield session
        except BaseException:
            await session.rollback()
            raise
        await session.commit()


async def ping_database() -> str:
    """``ok``, ``degraded`` or ``not_configured``."""
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Database ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_db() -> AsyncIterator[None]:
    if engine is None:
        logger.info("No DATABASE_URL configured, progression state is in-memory")
        yield
        return
    logger.info(
        "Database engine ready: %s", engine.url.render_as_string(hide_password=True)
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")
