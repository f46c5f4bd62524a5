from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.core.errors import AlreadyEnrolledError
from lms.models.progress import Enrollment, LessonProgress


class ProgressRepo(Protocol):
    async def get_lesson_progress(
        self, user_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...
    async def record_time_spent(
        self, user_id: UUID, lesson_id: UUID, minutes: int, *, now: int
    ) -> LessonProgress: ...
    async def mark_lesson_completed(
        self, user_id: UUID, lesson_id: UUID, *, now: int
    ) -> LessonProgress: ...
    async def completed_lesson_ids(
        self, user_id: UUID, lesson_ids: Iterable[UUID]
    ) -> set[UUID]: ...

    async def get_enrollment(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Enrollment | None: ...
    async def add_enrollment(self, enrollment: Enrollment) -> None: ...
    async def set_progress(
        self, enrollment_id: UUID, progress: int, status: str
    ) -> bool: ...
    async def mark_completed(self, enrollment_id: UUID, *, now: int) -> bool: ...


class InMemoryProgressRepo:
    """Enforces the same uniqueness rules as the enrollments table.

    No method awaits between its check and its write, so each call is
    atomic with respect to other coroutines on the loop.
    """

    def __init__(self) -> None:
        self._lesson_progress: dict[tuple[UUID, UUID], LessonProgress] = {}
        self._enrollments: dict[UUID, Enrollment] = {}

    def clear(self) -> None:
        self._lesson_progress.clear()
        self._enrollments.clear()

    # --- lesson progress ---

    async def get_lesson_progress(
        self, user_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        return self._lesson_progress.get((user_id, lesson_id))

    async def record_time_spent(
        self, user_id: UUID, lesson_id: UUID, minutes: int, *, now: int
    ) -> LessonProgress:
        current = self._lesson_progress.get((user_id, lesson_id)) or LessonProgress(
            user_id=user_id, lesson_id=lesson_id
        )
        updated = replace(current, time_spent_minutes=minutes, updated_at=now)
        self._lesson_progress[(user_id, lesson_id)] = updated
        return updated

    async def mark_lesson_completed(
        self, user_id: UUID, lesson_id: UUID, *, now: int
    ) -> LessonProgress:
        current = self._lesson_progress.get((user_id, lesson_id)) or LessonProgress(
            user_id=user_id, lesson_id=lesson_id
        )
        updated = replace(
            current,
            is_completed=True,
            progress_percentage=100,
            completed_at=current.completed_at or now,
            updated_at=now,
        )
        self._lesson_progress[(user_id, lesson_id)] = updated
        return updated

    async def completed_lesson_ids(
        self, user_id: UUID, lesson_ids: Iterable[UUID]
    ) -> set[UUID]:
        return {
            lesson_id
            for lesson_id in lesson_ids
            if (p := self._lesson_progress.get((user_id, lesson_id))) is not None
            and p.is_completed
        }

    # --- enrollments ---

    async def get_enrollment(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Enrollment | None:
        for e in self._enrollments.values():
            if e.user_id != user_id:
                continue
            if course_id is not None and e.course_id == course_id:
                return e
            if class_id is not None and e.class_id == class_id:
                return e
        return None

    async def add_enrollment(self, enrollment: Enrollment) -> None:
        for e in self._enrollments.values():
            if e.user_id != enrollment.user_id:
                continue
            if enrollment.course_id is not None and e.course_id == enrollment.course_id:
                raise AlreadyEnrolledError("course", enrollment.course_id)
            if enrollment.class_id is not None and e.class_id == enrollment.class_id:
                raise AlreadyEnrolledError("class", enrollment.class_id)
        self._enrollments[enrollment.id] = enrollment

    async def set_progress(
        self, enrollment_id: UUID, progress: int, status: str
    ) -> bool:
        e = self._enrollments.get(enrollment_id)
        if e is None or e.status == "completed":
            return False
        self._enrollments[enrollment_id] = replace(e, progress=progress, status=status)
        return True

    async def mark_completed(self, enrollment_id: UUID, *, now: int) -> bool:
        """Flip to completed.  False when already completed (or missing)."""
        e = self._enrollments.get(enrollment_id)
        if e is None or e.status == "completed":
            return False
        self._enrollments[enrollment_id] = replace(
            e, progress=100, status="completed", completed_at=e.completed_at or now
        )
        return True
