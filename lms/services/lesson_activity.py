"""Learner-side lesson reads and writes.

Viewing or recording a lesson requires an enrollment in its course and an
unlocked lesson.  Recording stores the time spent (replacing, not adding)
and completes the lesson only when no test is attached to it; lessons
with a test are completed by passing it, or by proceeding once attempts
run out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from lms.core.errors import NotEnrolledError, NotFoundError
from lms.core.metrics import SIDE_EFFECT_FAILURES
from lms.models.course import Lesson
from lms.models.progress import LessonProgress, ProgressSnapshot
from lms.repos.registry import LearningRepos
from lms.services.clock import Clock, utc_now
from lms.services.course_progress import CourseProgressAggregator
from lms.services.lesson_unlock import LessonUnlockEvaluator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LessonView:
    lesson: Lesson
    progress: LessonProgress | None
    has_test: bool


@dataclass(frozen=True, slots=True)
class LessonUpdate:
    lesson_progress: LessonProgress
    course_progress: ProgressSnapshot | None


class LessonActivity:
    def __init__(
        self,
        repos: LearningRepos,
        unlock: LessonUnlockEvaluator,
        progress: CourseProgressAggregator,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._repos = repos
        self._unlock = unlock
        self._progress = progress
        self._clock = clock

    async def view(self, lesson_id: UUID, user_id: UUID) -> LessonView:
        lesson = await self._open_lesson(lesson_id, user_id)
        return LessonView(
            lesson=lesson,
            progress=await self._repos.progress.get_lesson_progress(user_id, lesson.id),
            has_test=await self._repos.catalog.get_lesson_test(lesson.id) is not None,
        )

    async def record(
        self, lesson_id: UUID, user_id: UUID, *, time_spent_minutes: int = 0
    ) -> LessonUpdate:
        if time_spent_minutes < 0:
            raise ValueError("time_spent_minutes must be >= 0")
        lesson = await self._open_lesson(lesson_id, user_id)

        now = self._clock()
        progress = await self._repos.progress.record_time_spent(
            user_id, lesson.id, time_spent_minutes, now=now
        )
        if await self._repos.catalog.get_lesson_test(lesson.id) is None:
            progress = await self._repos.progress.mark_lesson_completed(
                user_id, lesson.id, now=now
            )
            logger.info(
                "Lesson completed",
                extra={"user_id": str(user_id), "lesson_id": str(lesson.id)},
            )

        return LessonUpdate(
            lesson_progress=progress,
            course_progress=await self._refresh(user_id, lesson),
        )

    async def _open_lesson(self, lesson_id: UUID, user_id: UUID) -> Lesson:
        lesson = await self._repos.catalog.get_lesson(lesson_id)
        if lesson is None or not lesson.is_published:
            raise NotFoundError("lesson", lesson_id)
        enrollment = await self._repos.progress.get_enrollment(
            user_id, course_id=lesson.course_id
        )
        if enrollment is None:
            raise NotEnrolledError("course", lesson.course_id)
        return await self._unlock.require_unlocked(lesson.id, user_id)

    async def _refresh(self, user_id: UUID, lesson: Lesson) -> ProgressSnapshot | None:
        try:
            async with self._repos.savepoint():
                return await self._progress.recompute(user_id, lesson.course_id)
        except Exception:
            SIDE_EFFECT_FAILURES.labels(effect="progress").inc()
            logger.exception(
                "Progress recompute failed",
                extra={"user_id": str(user_id), "lesson_id": str(lesson.id)},
            )
        return None
