from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    title: str
    is_published: bool = True
    certification: str | None = None  # offered certificate name, None = not offered
    student_count: int = 0
    deleted_at: int | None = None

    @property
    def offers_certificate(self) -> bool:
        return bool(self.certification and self.certification.strip())

    @property
    def is_available(self) -> bool:
        return self.is_published and self.deleted_at is None

    @staticmethod
    def new(
        *, title: str, is_published: bool = True, certification: str | None = None
    ) -> Course:
        return Course(
            id=uuid4(),
            title=title,
            is_published=is_published,
            certification=certification,
        )


@dataclass(frozen=True, slots=True)
class CourseClass:
    """Instructor-led class; progress is recorded by the instructor."""

    id: UUID
    title: str
    is_published: bool = True
    certification: str | None = None
    max_students: int | None = None
    available_slots: int | None = None  # None = unlimited

    @property
    def offers_certificate(self) -> bool:
        return bool(self.certification and self.certification.strip())

    @staticmethod
    def new(
        *,
        title: str,
        certification: str | None = None,
        max_students: int | None = None,
        is_published: bool = True,
    ) -> CourseClass:
        return CourseClass(
            id=uuid4(),
            title=title,
            is_published=is_published,
            certification=certification,
            max_students=max_students,
            available_slots=max_students,
        )


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    course_id: UUID
    title: str
    order_index: int  # 1-based, unique within the course
    is_published: bool = True
    duration_minutes: int = 0

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        order_index: int,
        is_published: bool = True,
        duration_minutes: int = 0,
    ) -> Lesson:
        return Lesson(
            id=uuid4(),
            course_id=course_id,
            title=title,
            order_index=order_index,
            is_published=is_published,
            duration_minutes=duration_minutes,
        )
