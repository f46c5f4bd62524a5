"""Repository bundle handed to the progression services.

``memory_repos`` is the process-wide in-memory bundle used when no
DATABASE_URL is configured (dev, tests).  ``pg_repos(session)`` builds a
bundle bound to one request-scoped AsyncSession.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from lms.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from lms.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from lms.repos.certification_repo import CertificationRepo, InMemoryCertificationRepo
from lms.repos.notification_repo import InMemoryNotificationRepo, NotificationRepo
from lms.repos.pg_attempt_repo import PgAttemptRepo
from lms.repos.pg_catalog_repo import PgCatalogRepo
from lms.repos.pg_certification_repo import PgCertificationRepo
from lms.repos.pg_notification_repo import PgNotificationRepo
from lms.repos.pg_progress_repo import PgProgressRepo
from lms.repos.progress_repo import InMemoryProgressRepo, ProgressRepo


@asynccontextmanager
async def _no_savepoint() -> AsyncIterator[None]:
    yield


@dataclass(frozen=True, slots=True)
class LearningRepos:
    catalog: CatalogRepo
    progress: ProgressRepo
    attempts: AttemptRepo
    certifications: CertificationRepo
    notifications: NotificationRepo
    # Opens an isolated sub-transaction for best-effort work, so a storage
    # error inside it cannot poison the caller's unit of work.
    savepoint: Callable[[], AbstractAsyncContextManager] = _no_savepoint


def in_memory_repos() -> LearningRepos:
    return LearningRepos(
        catalog=InMemoryCatalogRepo(),
        progress=InMemoryProgressRepo(),
        attempts=InMemoryAttemptRepo(),
        certifications=InMemoryCertificationRepo(),
        notifications=InMemoryNotificationRepo(),
    )


def pg_repos(session: AsyncSession) -> LearningRepos:
    return LearningRepos(
        catalog=PgCatalogRepo(session),
        progress=PgProgressRepo(session),
        attempts=PgAttemptRepo(session),
        certifications=PgCertificationRepo(session),
        notifications=PgNotificationRepo(session),
        savepoint=session.begin_nested,
    )


memory_repos = in_memory_repos()


def reset_memory_repos() -> None:
    """Clear the shared in-memory bundle (used by tests)."""
    for repo in (
        memory_repos.catalog,
        memory_repos.progress,
        memory_repos.attempts,
        memory_repos.certifications,
        memory_repos.notifications,
    ):
        repo.clear()  # type: ignore[attr-defined]
