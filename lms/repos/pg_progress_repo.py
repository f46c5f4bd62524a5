"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import AlreadyEnrolledError
from lms.db.integrity import violates
from lms.db.tables import EnrollmentRow, LessonProgressRow
from lms.models.progress import Enrollment, LessonProgress


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- lesson progress ---

    async def get_lesson_progress(
        self, user_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_lesson_progress(row) if row is not None else None

    async def record_time_spent(
        self, user_id: UUID, lesson_id: UUID, minutes: int, *, now: int
    ) -> LessonProgress:
        stmt = (
            pg_insert(LessonProgressRow)
            .values(
                user_id=user_id,
                lesson_id=lesson_id,
                is_completed=False,
                progress_percentage=0,
                time_spent_minutes=minutes,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[LessonProgressRow.user_id, LessonProgressRow.lesson_id],
                set_={"time_spent_minutes": minutes, "updated_at": now},
            )
            .returning(LessonProgressRow)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_lesson_progress(row)

    async def mark_lesson_completed(
        self, user_id: UUID, lesson_id: UUID, *, now: int
    ) -> LessonProgress:
        stmt = (
            pg_insert(LessonProgressRow)
            .values(
                user_id=user_id,
                lesson_id=lesson_id,
                is_completed=True,
                progress_percentage=100,
                time_spent_minutes=0,
                completed_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[LessonProgressRow.user_id, LessonProgressRow.lesson_id],
                set_={
                    "is_completed": True,
                    "progress_percentage": 100,
                    # first completion time wins
                    "completed_at": func.coalesce(LessonProgressRow.completed_at, now),
                    "updated_at": now,
                },
            )
            .returning(LessonProgressRow)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_lesson_progress(row)

    async def completed_lesson_ids(
        self, user_id: UUID, lesson_ids: Iterable[UUID]
    ) -> set[UUID]:
        ids = list(lesson_ids)
        if not ids:
            return set()
        stmt = select(LessonProgressRow.lesson_id).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id.in_(ids),
            LessonProgressRow.is_completed.is_(True),
        )
        return set((await self._session.execute(stmt)).scalars().all())

    # --- enrollments ---

    async def get_enrollment(
        self,
        user_id: UUID,
        *,
        course_id: UUID | None = None,
        class_id: UUID | None = None,
    ) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(EnrollmentRow.user_id == user_id)
        if course_id is not None:
            stmt = stmt.where(EnrollmentRow.course_id == course_id)
        elif class_id is not None:
            stmt = stmt.where(EnrollmentRow.class_id == class_id)
        else:
            return None
        stmt = stmt.execution_options(populate_existing=True)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def add_enrollment(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            class_id=enrollment.class_id,
            progress=enrollment.progress,
            status=enrollment.status,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as exc:
            if violates(exc, "uq_enrollments_user_course"):
                raise AlreadyEnrolledError("course", enrollment.course_id) from None
            if violates(exc, "uq_enrollments_user_class"):
                raise AlreadyEnrolledError("class", enrollment.class_id) from None
            raise

    async def set_progress(
        self, enrollment_id: UUID, progress: int, status: str
    ) -> bool:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .where(EnrollmentRow.status != "completed")
            .values(progress=progress, status=status)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_completed(self, enrollment_id: UUID, *, now: int) -> bool:
        """Conditional flip to completed; False when another writer got there first."""
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .where(EnrollmentRow.status != "completed")
            .values(
                progress=100,
                status="completed",
                completed_at=func.coalesce(EnrollmentRow.completed_at, now),
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_lesson_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        user_id=row.user_id,
        lesson_id=row.lesson_id,
        is_completed=row.is_completed,
        progress_percentage=row.progress_percentage,
        time_spent_minutes=row.time_spent_minutes,
        completed_at=row.completed_at,
        updated_at=row.updated_at,
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        enrolled_at=row.enrolled_at,
        course_id=row.course_id,
        class_id=row.class_id,
        progress=row.progress,
        status=row.status,
        completed_at=row.completed_at,
    )
