from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from lms.models.course import Lesson

ENROLLMENT_STATUSES = ("enrolled", "in_progress", "completed", "dropped")


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """One row per (user, lesson); created on first write, never deleted."""

    user_id: UUID
    lesson_id: UUID
    is_completed: bool = False
    progress_percentage: int = 0
    time_spent_minutes: int = 0
    completed_at: int | None = None
    updated_at: int | None = None


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A user's participation in exactly one course or one class."""

    id: UUID
    user_id: UUID
    enrolled_at: int
    course_id: UUID | None = None
    class_id: UUID | None = None
    progress: int = 0  # 0-100
    status: str = "enrolled"  # enrolled|in_progress|completed|dropped
    completed_at: int | None = None

    @property
    def scope(self) -> str:
        return "course" if self.course_id is not None else "class"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @staticmethod
    def new(
        *,
        user_id: UUID,
        enrolled_at: int,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Enrollment:
        if (course_id is None) == (class_id is None):
            raise ValueError("an enrollment targets exactly one course or class")
        return Enrollment(
            id=uuid4(),
            user_id=user_id,
            enrolled_at=enrolled_at,
            course_id=course_id,
            class_id=class_id,
        )


@dataclass(frozen=True, slots=True)
class LessonAccess:
    """Unlock state of one lesson for one user, as computed left to right."""

    lesson: Lesson
    is_unlocked: bool
    is_completed: bool
    test_passed: bool
    prerequisite_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    progress: int
    status: str
    newly_completed: bool = False
