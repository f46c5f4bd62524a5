"""Lesson unlock evaluation.

Single lesson (``is_unlocked``): the first lesson of a course is always
open; any other lesson is open iff the lesson at ``order_index - 1``
exists and the user has completed it.  A gap in the ordering locks the
lesson rather than raising.

Whole course (``evaluate_course``): a left fold over published lessons in
order, carrying the previous lesson's state forward.  Lesson *i* is open
iff lesson *i-1* was open AND (lesson *i-1* is completed OR its test is
passed).  Each step depends on the one before it, so the fold is never
short-cut with random access.

All operations here are pure reads.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.errors import LessonLockedError, NotFoundError
from lms.models.course import Lesson
from lms.models.progress import LessonAccess
from lms.repos.registry import LearningRepos

logger = logging.getLogger(__name__)


class LessonUnlockEvaluator:
    def __init__(self, repos: LearningRepos) -> None:
        self._repos = repos

    async def is_unlocked(self, lesson_id: UUID, user_id: UUID) -> bool:
        lesson = await self._repos.catalog.get_lesson(lesson_id)
        if lesson is None:
            raise NotFoundError("lesson", lesson_id)
        unlocked, _ = await self._check(lesson, user_id)
        return unlocked

    async def require_unlocked(self, lesson_id: UUID, user_id: UUID) -> Lesson:
        """Return the lesson, or raise LessonLockedError naming the prerequisite."""
        lesson = await self._repos.catalog.get_lesson(lesson_id)
        if lesson is None:
            raise NotFoundError("lesson", lesson_id)
        unlocked, previous = await self._check(lesson, user_id)
        if not unlocked:
            logger.info(
                "Lesson locked for user",
                extra={"lesson_id": str(lesson_id), "user_id": str(user_id)},
            )
            raise LessonLockedError(
                lesson_id,
                previous.id if previous is not None else None,
                previous.title if previous is not None else None,
            )
        return lesson

    async def evaluate_course(
        self, course_id: UUID, user_id: UUID
    ) -> list[LessonAccess]:
        if await self._repos.catalog.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

        lessons = await self._repos.catalog.list_lessons(course_id)
        completed = await self._repos.progress.completed_lesson_ids(
            user_id, [lesson.id for lesson in lessons]
        )
        lesson_tests = {}
        for lesson in lessons:
            test = await self._repos.catalog.get_lesson_test(lesson.id)
            if test is not None:
                lesson_tests[lesson.id] = test
        passed = await self._repos.attempts.passed_test_ids(
            user_id, list(lesson_tests.values())
        )

        result: list[LessonAccess] = []
        previous: LessonAccess | None = None
        for lesson in lessons:
            test = lesson_tests.get(lesson.id)
            if previous is None:
                unlocked = True
            else:
                unlocked = previous.is_unlocked and (
                    previous.is_completed or previous.test_passed
                )
            access = LessonAccess(
                lesson=lesson,
                is_unlocked=unlocked,
                is_completed=lesson.id in completed,
                test_passed=test is not None and test.id in passed,
                prerequisite_id=previous.lesson.id if previous is not None else None,
            )
            result.append(access)
            previous = access
        return result

    async def next_lesson(self, course_id: UUID, user_id: UUID) -> Lesson | None:
        """First open lesson the user has not completed; None when all are done."""
        for access in await self.evaluate_course(course_id, user_id):
            if access.is_unlocked and not access.is_completed:
                return access.lesson
        return None

    async def _check(
        self, lesson: Lesson, user_id: UUID
    ) -> tuple[bool, Lesson | None]:
        if lesson.order_index == 1:
            return True, None
        previous = await self._repos.catalog.get_lesson_at(
            lesson.course_id, lesson.order_index - 1
        )
        if previous is None:
            return False, None
        progress = await self._repos.progress.get_lesson_progress(user_id, previous.id)
        return progress is not None and progress.is_completed, previous
