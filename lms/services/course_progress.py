"""Course progress aggregation.

Progress is recomputed lazily, only after a lesson-progress write or a
test submission:

  lesson component = completed published lessons / published lessons
  test component   = passed tests / published course tests

Both components weigh 50% when the course has lessons and tests; when it
only has one kind, that kind carries the full 100%.  A test counts as
passed when ANY completed attempt reached its passing score.

Completion is one-way.  Crossing 100% flips the enrollment to completed
through a conditional update, so only the first crossing triggers the
certificate engine, and a completed enrollment is never recomputed down.
Certificate failures are logged and swallowed.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.errors import NotEnrolledError
from lms.core.metrics import ENROLLMENTS_COMPLETED, SIDE_EFFECT_FAILURES
from lms.models.progress import Enrollment, ProgressSnapshot
from lms.repos.registry import LearningRepos
from lms.services.certificate_service import CertificateEngine
from lms.services.clock import Clock, utc_now
from lms.services.scoring import round_half_up

logger = logging.getLogger(__name__)


def compute_progress(
    total_lessons: int, completed_lessons: int, total_tests: int, passed_tests: int
) -> int:
    lesson_ratio = completed_lessons / total_lessons if total_lessons else 0.0
    test_ratio = passed_tests / total_tests if total_tests else 0.0
    if total_lessons and total_tests:
        value = lesson_ratio * 50 + test_ratio * 50
    elif total_lessons:
        value = lesson_ratio * 100
    elif total_tests:
        value = test_ratio * 100
    else:
        value = 0.0
    return min(100, round_half_up(value))


class CourseProgressAggregator:
    def __init__(
        self,
        repos: LearningRepos,
        certificates: CertificateEngine,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._repos = repos
        self._certificates = certificates
        self._clock = clock

    async def recompute(self, user_id: UUID, course_id: UUID) -> ProgressSnapshot:
        enrollment = await self._repos.progress.get_enrollment(
            user_id, course_id=course_id
        )
        if enrollment is None:
            raise NotEnrolledError("course", course_id)
        if enrollment.is_completed:
            return ProgressSnapshot(progress=enrollment.progress, status="completed")

        lessons = await self._repos.catalog.list_lessons(course_id)
        tests = await self._repos.catalog.list_course_tests(course_id)
        completed = await self._repos.progress.completed_lesson_ids(
            user_id, [lesson.id for lesson in lessons]
        )
        passed = await self._repos.attempts.passed_test_ids(user_id, tests)

        progress = compute_progress(len(lessons), len(completed), len(tests), len(passed))
        logger.debug(
            "Progress lessons=%d/%d tests=%d/%d -> %d%%",
            len(completed),
            len(lessons),
            len(passed),
            len(tests),
            progress,
            extra={"user_id": str(user_id), "course_id": str(course_id)},
        )
        return await self._persist(enrollment, progress)

    async def record_class_progress(
        self, user_id: UUID, class_id: UUID, progress: int
    ) -> ProgressSnapshot:
        """Instructor-reported progress for a class enrollment."""
        if not 0 <= progress <= 100:
            raise ValueError("progress must be between 0 and 100")
        enrollment = await self._repos.progress.get_enrollment(
            user_id, class_id=class_id
        )
        if enrollment is None:
            raise NotEnrolledError("class", class_id)
        if enrollment.is_completed:
            return ProgressSnapshot(progress=enrollment.progress, status="completed")
        return await self._persist(enrollment, progress)

    async def _persist(
        self, enrollment: Enrollment, progress: int
    ) -> ProgressSnapshot:
        if progress >= 100:
            newly = await self._repos.progress.mark_completed(
                enrollment.id, now=self._clock()
            )
            if newly:
                ENROLLMENTS_COMPLETED.labels(scope=enrollment.scope).inc()
                logger.info(
                    "Enrollment completed",
                    extra=_extra(enrollment),
                )
                await self._award(enrollment)
            return ProgressSnapshot(progress=100, status="completed", newly_completed=newly)

        status = enrollment.status
        if status == "enrolled" and progress > 0:
            status = "in_progress"
        await self._repos.progress.set_progress(enrollment.id, progress, status)
        return ProgressSnapshot(progress=progress, status=status)

    async def _award(self, enrollment: Enrollment) -> None:
        try:
            async with self._repos.savepoint():
                await self._certificates.check_and_award(
                    enrollment.user_id,
                    course_id=enrollment.course_id,
                    class_id=enrollment.class_id,
                )
        except Exception:
            SIDE_EFFECT_FAILURES.labels(effect="certificate_check").inc()
            logger.exception("Certificate check failed", extra=_extra(enrollment))


def _extra(enrollment: Enrollment) -> dict[str, str]:
    extra = {"user_id": str(enrollment.user_id)}
    if enrollment.course_id is not None:
        extra["course_id"] = str(enrollment.course_id)
    if enrollment.class_id is not None:
        extra["class_id"] = str(enrollment.class_id)
    return extra
