"""PostgreSQL implementation of AttemptRepo.

The partial unique index ``uq_test_attempts_in_progress`` is the real
guard against two concurrent starts; the service's pre-check only gives
the caller a friendlier error in the common case.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import AttemptInProgressError, DuplicateAnswerError
from lms.db.integrity import violates
from lms.db.tables import AttemptAnswerRow, AttemptRow, TestRow
from lms.models.assessment import AttemptAnswer, Test, TestAttempt


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- attempts ---

    async def get_attempt(self, attempt_id: UUID) -> TestAttempt | None:
        row = await self._session.get(AttemptRow, attempt_id, populate_existing=True)
        return _row_to_attempt(row) if row is not None else None

    async def add_attempt(self, attempt: TestAttempt) -> None:
        row = AttemptRow(
            id=attempt.id,
            test_id=attempt.test_id,
            user_id=attempt.user_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            total_questions=attempt.total_questions,
            started_at=attempt.started_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as exc:
            if violates(exc, "uq_test_attempts_in_progress") or violates(
                exc, "uq_test_attempts_number"
            ):
                raise AttemptInProgressError(attempt.test_id) from None
            raise

    async def count_attempts(self, test_id: UUID, user_id: UUID) -> int:
        stmt = select(func.count()).where(
            AttemptRow.test_id == test_id, AttemptRow.user_id == user_id
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_attempts(self, test_id: UUID, user_id: UUID) -> list[TestAttempt]:
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.test_id == test_id, AttemptRow.user_id == user_id)
            .order_by(AttemptRow.attempt_number)
            .execution_options(populate_existing=True)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def get_in_progress(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None:
        stmt = select(AttemptRow).where(
            AttemptRow.test_id == test_id,
            AttemptRow.user_id == user_id,
            AttemptRow.status == "in_progress",
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    async def last_completed(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None:
        stmt = (
            select(AttemptRow)
            .where(
                AttemptRow.test_id == test_id,
                AttemptRow.user_id == user_id,
                AttemptRow.status == "completed",
            )
            .order_by(AttemptRow.attempt_number.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    async def list_in_progress(self) -> list[TestAttempt]:
        stmt = select(AttemptRow).where(AttemptRow.status == "in_progress")
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def complete_attempt(
        self,
        attempt_id: UUID,
        *,
        score: int,
        correct_answers: int,
        completed_at: int,
        time_taken_minutes: int,
    ) -> TestAttempt | None:
        """Atomically complete an in_progress attempt.  None if a concurrent
        submit (or the abandon sweep) already moved it."""
        stmt = (
            update(AttemptRow)
            .where(AttemptRow.id == attempt_id)
            .where(AttemptRow.status == "in_progress")
            .values(
                status="completed",
                score=score,
                correct_answers=correct_answers,
                completed_at=completed_at,
                time_taken_minutes=time_taken_minutes,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_attempt(attempt_id)

    async def abandon_attempt(self, attempt_id: UUID) -> bool:
        stmt = (
            update(AttemptRow)
            .where(AttemptRow.id == attempt_id)
            .where(AttemptRow.status == "in_progress")
            .values(status="abandoned")
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def passed_test_ids(
        self, user_id: UUID, tests: Sequence[Test]
    ) -> set[UUID]:
        ids = [t.id for t in tests]
        if not ids:
            return set()
        stmt = (
            select(AttemptRow.test_id)
            .join(TestRow, TestRow.id == AttemptRow.test_id)
            .where(
                AttemptRow.user_id == user_id,
                AttemptRow.test_id.in_(ids),
                AttemptRow.status == "completed",
                AttemptRow.score >= TestRow.passing_score,
            )
            .distinct()
        )
        return set((await self._session.execute(stmt)).scalars().all())

    # --- answers ---

    async def add_answer(self, answer: AttemptAnswer) -> None:
        row = AttemptAnswerRow(
            attempt_id=answer.attempt_id,
            question_id=answer.question_id,
            selected_answer=answer.selected_answer,
            answer_text=answer.answer_text,
            is_correct=answer.is_correct,
            points_earned=answer.points_earned,
            answered_at=answer.answered_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as exc:
            if violates(exc, "test_attempt_answers_pkey"):
                raise DuplicateAnswerError(
                    answer.attempt_id, answer.question_id
                ) from None
            raise

    async def get_answer(
        self, attempt_id: UUID, question_id: UUID
    ) -> AttemptAnswer | None:
        row = await self._session.get(AttemptAnswerRow, (attempt_id, question_id))
        return _row_to_answer(row) if row is not None else None

    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]:
        stmt = select(AttemptAnswerRow).where(AttemptAnswerRow.attempt_id == attempt_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_answer(r) for r in rows]


def _row_to_attempt(row: AttemptRow) -> TestAttempt:
    return TestAttempt(
        id=row.id,
        test_id=row.test_id,
        user_id=row.user_id,
        attempt_number=row.attempt_number,
        started_at=row.started_at,
        total_questions=row.total_questions,
        status=row.status,
        score=row.score,
        correct_answers=row.correct_answers,
        completed_at=row.completed_at,
        time_taken_minutes=row.time_taken_minutes,
    )


def _row_to_answer(row: AttemptAnswerRow) -> AttemptAnswer:
    return AttemptAnswer(
        attempt_id=row.attempt_id,
        question_id=row.question_id,
        is_correct=row.is_correct,
        points_earned=row.points_earned,
        answered_at=row.answered_at,
        selected_answer=row.selected_answer,
        answer_text=row.answer_text,
    )
