"""Wires the progression services onto one repository bundle."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from lms.db import engine
from lms.repos.registry import LearningRepos, memory_repos, pg_repos
from lms.services.attempts import AttemptService
from lms.services.certificate_service import CertificateEngine
from lms.services.clock import Clock, utc_now
from lms.services.course_progress import CourseProgressAggregator
from lms.services.enrollment import EnrollmentService
from lms.services.inbox import NotificationInbox
from lms.services.lesson_activity import LessonActivity
from lms.services.lesson_unlock import LessonUnlockEvaluator
from lms.services.notifier import Notifier
from lms.services.task_queue import TaskOutbox, TaskQueue, task_queue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LearningServices:
    repos: LearningRepos
    unlock: LessonUnlockEvaluator
    certificates: CertificateEngine
    progress: CourseProgressAggregator
    attempts: AttemptService
    enrollment: EnrollmentService
    lessons: LessonActivity
    inbox: NotificationInbox


def build_learning_services(
    repos: LearningRepos,
    *,
    queue: TaskQueue = task_queue,
    clock: Clock = utc_now,
) -> LearningServices:
    unlock = LessonUnlockEvaluator(repos)
    certificates = CertificateEngine(repos, queue, Notifier(queue), clock=clock)
    progress = CourseProgressAggregator(repos, certificates, clock=clock)
    return LearningServices(
        repos=repos,
        unlock=unlock,
        certificates=certificates,
        progress=progress,
        attempts=AttemptService(repos, progress, clock=clock),
        enrollment=EnrollmentService(repos, clock=clock),
        lessons=LessonActivity(repos, unlock, progress, clock=clock),
        inbox=NotificationInbox(repos, clock=clock),
    )


@asynccontextmanager
async def learning_scope(
    *, queue: TaskQueue = task_queue, clock: Clock = utc_now
) -> AsyncIterator[LearningServices]:
    """One unit of work over a committed-or-rolled-back session, or over the
    shared in-memory repositories when no DATABASE_URL is configured.

    Tasks the services enqueue reach ``queue`` only after the session has
    committed, so a worker never sees a task for a row it cannot read yet.
    """
    outbox = TaskOutbox(queue)
    if engine.async_session_factory is None:
        # In-memory writes are visible at once and never rolled back.
        try:
            yield build_learning_services(memory_repos, queue=outbox, clock=clock)
        finally:
            await outbox.flush()
        return

    try:
        async with engine.session_scope() as session:
            yield build_learning_services(pg_repos(session), queue=outbox, clock=clock)
    except BaseException:
        dropped = outbox.discard()
        if dropped:
            logger.warning("Dropped %d tasks from a rolled-back unit of work", dropped)
        raise
    await outbox.flush()
