"""Course and class enrollment.

Course enrollment bumps the course's student counter atomically.  Class
enrollment first reserves a seat (``available_slots > 0`` guard in the
UPDATE) and gives it back if the enrollment insert loses a race.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.errors import (
    AlreadyEnrolledError,
    ClassFullError,
    NotEnrolledError,
    NotFoundError,
)
from lms.models.progress import Enrollment
from lms.repos.registry import LearningRepos
from lms.services.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class EnrollmentService:
    def __init__(self, repos: LearningRepos, *, clock: Clock = utc_now) -> None:
        self._repos = repos
        self._clock = clock

    async def enroll_in_course(self, user_id: UUID, course_id: UUID) -> Enrollment:
        course = await self._repos.catalog.get_course(course_id)
        if course is None or not course.is_available:
            raise NotFoundError("course", course_id)

        enrollment = Enrollment.new(
            user_id=user_id, enrolled_at=self._clock(), course_id=course_id
        )
        await self._repos.progress.add_enrollment(enrollment)
        await self._repos.catalog.increment_student_count(course_id)
        logger.info(
            "Enrolled in course",
            extra={"user_id": str(user_id), "course_id": str(course_id)},
        )
        return enrollment

    async def enroll_in_class(self, user_id: UUID, class_id: UUID) -> Enrollment:
        course_class = await self._repos.catalog.get_class(class_id)
        if course_class is None or not course_class.is_published:
            raise NotFoundError("class", class_id)

        if await self._repos.progress.get_enrollment(user_id, class_id=class_id):
            raise AlreadyEnrolledError("class", class_id)
        if not await self._repos.catalog.reserve_class_slot(class_id):
            raise ClassFullError(class_id)

        enrollment = Enrollment.new(
            user_id=user_id, enrolled_at=self._clock(), class_id=class_id
        )
        try:
            await self._repos.progress.add_enrollment(enrollment)
        except AlreadyEnrolledError:
            await self._repos.catalog.release_class_slot(class_id)
            raise
        logger.info(
            "Enrolled in class",
            extra={"user_id": str(user_id), "class_id": str(class_id)},
        )
        return enrollment

    async def require_course_enrollment(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment:
        enrollment = await self._repos.progress.get_enrollment(
            user_id, course_id=course_id
        )
        if enrollment is None:
            raise NotEnrolledError("course", course_id)
        return enrollment
