"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import ClassRow, CourseRow, LessonRow, QuestionRow, TestRow
from lms.models.assessment import Question, Test
from lms.models.course import Course, CourseClass, Lesson


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- courses ---

    async def get_course(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id, populate_existing=True)
        return _row_to_course(row) if row is not None else None

    async def add_course(self, course: Course) -> None:
        self._session.add(
            CourseRow(
                id=course.id,
                title=course.title,
                is_published=course.is_published,
                certification=course.certification,
                student_count=course.student_count,
                deleted_at=course.deleted_at,
            )
        )
        await self._session.flush()

    async def increment_student_count(self, course_id: UUID) -> None:
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(student_count=CourseRow.student_count + 1)
        )
        await self._session.execute(stmt)

    # --- classes ---

    async def get_class(self, class_id: UUID) -> CourseClass | None:
        row = await self._session.get(ClassRow, class_id, populate_existing=True)
        return _row_to_class(row) if row is not None else None

    async def add_class(self, course_class: CourseClass) -> None:
        self._session.add(
            ClassRow(
                id=course_class.id,
                title=course_class.title,
                is_published=course_class.is_published,
                certification=course_class.certification,
                max_students=course_class.max_students,
                available_slots=course_class.available_slots,
            )
        )
        await self._session.flush()

    async def reserve_class_slot(self, class_id: UUID) -> bool:
        """Atomically take one slot.  False when the class is full."""
        course_class = await self.get_class(class_id)
        if course_class is None:
            return False
        if course_class.available_slots is None:
            return True
        stmt = (
            update(ClassRow)
            .where(ClassRow.id == class_id)
            .where(ClassRow.available_slots > 0)
            .values(available_slots=ClassRow.available_slots - 1)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def release_class_slot(self, class_id: UUID) -> None:
        stmt = (
            update(ClassRow)
            .where(ClassRow.id == class_id)
            .where(ClassRow.available_slots.is_not(None))
            .values(available_slots=ClassRow.available_slots + 1)
        )
        await self._session.execute(stmt)

    # --- lessons ---

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return _row_to_lesson(row) if row is not None else None

    async def add_lesson(self, lesson: Lesson) -> None:
        self._session.add(
            LessonRow(
                id=lesson.id,
                course_id=lesson.course_id,
                title=lesson.title,
                order_index=lesson.order_index,
                is_published=lesson.is_published,
                duration_minutes=lesson.duration_minutes,
            )
        )
        await self._session.flush()

    async def get_lesson_at(self, course_id: UUID, order_index: int) -> Lesson | None:
        stmt = select(LessonRow).where(
            LessonRow.course_id == course_id, LessonRow.order_index == order_index
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_lesson(row) if row is not None else None

    async def list_lessons(
        self, course_id: UUID, *, published_only: bool = True
    ) -> list[Lesson]:
        stmt = select(LessonRow).where(LessonRow.course_id == course_id)
        if published_only:
            stmt = stmt.where(LessonRow.is_published.is_(True))
        stmt = stmt.order_by(LessonRow.order_index)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    # --- tests ---

    async def get_test(self, test_id: UUID) -> Test | None:
        row = await self._session.get(TestRow, test_id)
        return _row_to_test(row) if row is not None else None

    async def add_test(self, test: Test) -> None:
        self._session.add(
            TestRow(
                id=test.id,
                title=test.title,
                course_id=test.course_id,
                lesson_id=test.lesson_id,
                passing_score=test.passing_score,
                max_attempts=test.max_attempts,
                duration_minutes=test.duration_minutes,
                is_published=test.is_published,
            )
        )
        await self._session.flush()

    async def get_lesson_test(self, lesson_id: UUID) -> Test | None:
        stmt = select(TestRow).where(TestRow.lesson_id == lesson_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_test(row) if row is not None else None

    async def list_course_tests(self, course_id: UUID) -> list[Test]:
        stmt = (
            select(TestRow)
            .outerjoin(LessonRow, TestRow.lesson_id == LessonRow.id)
            .where(TestRow.is_published.is_(True))
            .where(
                or_(
                    TestRow.course_id == course_id,
                    (LessonRow.course_id == course_id)
                    & LessonRow.is_published.is_(True),
                )
            )
        )
        rows = (await self._session.execute(stmt)).scalars().unique().all()
        return [_row_to_test(r) for r in rows]

    # --- questions ---

    async def get_question(self, question_id: UUID) -> Question | None:
        row = await self._session.get(QuestionRow, question_id)
        return _row_to_question(row) if row is not None else None

    async def add_question(self, question: Question) -> None:
        self._session.add(
            QuestionRow(
                id=question.id,
                test_id=question.test_id,
                question=question.question,
                question_type=question.question_type,
                options=list(question.options),
                correct_answer=question.correct_answer,
                correct_answer_text=question.correct_answer_text,
                points=question.points,
                order_index=question.order_index,
            )
        )
        await self._session.flush()

    async def list_questions(self, test_id: UUID) -> list[Question]:
        stmt = (
            select(QuestionRow)
            .where(QuestionRow.test_id == test_id)
            .order_by(QuestionRow.order_index)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_question(r) for r in rows]


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        is_published=row.is_published,
        certification=row.certification,
        student_count=row.student_count,
        deleted_at=row.deleted_at,
    )


def _row_to_class(row: ClassRow) -> CourseClass:
    return CourseClass(
        id=row.id,
        title=row.title,
        is_published=row.is_published,
        certification=row.certification,
        max_students=row.max_students,
        available_slots=row.available_slots,
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        order_index=row.order_index,
        is_published=row.is_published,
        duration_minutes=row.duration_minutes,
    )


def _row_to_test(row: TestRow) -> Test:
    return Test(
        id=row.id,
        title=row.title,
        course_id=row.course_id,
        lesson_id=row.lesson_id,
        passing_score=row.passing_score,
        max_attempts=row.max_attempts,
        duration_minutes=row.duration_minutes,
        is_published=row.is_published,
    )


def _row_to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        test_id=row.test_id,
        question=row.question,
        question_type=row.question_type,
        options=tuple(row.options or ()),
        correct_answer=row.correct_answer,
        correct_answer_text=row.correct_answer_text,
        points=row.points,
        order_index=row.order_index,
    )
