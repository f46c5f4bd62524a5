from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.core.errors import AttemptInProgressError, DuplicateAnswerError
from lms.models.assessment import AttemptAnswer, Test, TestAttempt


class AttemptRepo(Protocol):
    async def get_attempt(self, attempt_id: UUID) -> TestAttempt | None: ...
    async def add_attempt(self, attempt: TestAttempt) -> None: ...
    async def count_attempts(self, test_id: UUID, user_id: UUID) -> int: ...
    async def list_attempts(self, test_id: UUID, user_id: UUID) -> list[TestAttempt]: ...
    async def get_in_progress(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None: ...
    async def last_completed(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None: ...
    async def list_in_progress(self) -> list[TestAttempt]: ...
    async def complete_attempt(
        self,
        attempt_id: UUID,
        *,
        score: int,
        correct_answers: int,
        completed_at: int,
        time_taken_minutes: int,
    ) -> TestAttempt | None: ...
    async def abandon_attempt(self, attempt_id: UUID) -> bool: ...
    async def passed_test_ids(
        self, user_id: UUID, tests: Sequence[Test]
    ) -> set[UUID]: ...

    async def add_answer(self, answer: AttemptAnswer) -> None: ...
    async def get_answer(
        self, attempt_id: UUID, question_id: UUID
    ) -> AttemptAnswer | None: ...
    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]: ...


class InMemoryAttemptRepo:
    """Mirrors the test_attempts / test_attempt_answers constraints.

    add_attempt refuses a second in_progress attempt for (test, user) and a
    reused attempt_number; add_answer refuses a second answer for
    (attempt, question).  Check and insert happen without an await between
    them.
    """

    def __init__(self) -> None:
        self._attempts: dict[UUID, TestAttempt] = {}
        self._answers: dict[tuple[UUID, UUID], AttemptAnswer] = {}

    def clear(self) -> None:
        self._attempts.clear()
        self._answers.clear()

    # --- attempts ---

    async def get_attempt(self, attempt_id: UUID) -> TestAttempt | None:
        return self._attempts.get(attempt_id)

    async def add_attempt(self, attempt: TestAttempt) -> None:
        for a in self._attempts.values():
            if a.test_id != attempt.test_id or a.user_id != attempt.user_id:
                continue
            if a.status == "in_progress" and attempt.status == "in_progress":
                raise AttemptInProgressError(attempt.test_id, a.id)
            if a.attempt_number == attempt.attempt_number:
                raise AttemptInProgressError(attempt.test_id)
        self._attempts[attempt.id] = attempt

    async def count_attempts(self, test_id: UUID, user_id: UUID) -> int:
        return len(await self.list_attempts(test_id, user_id))

    async def list_attempts(self, test_id: UUID, user_id: UUID) -> list[TestAttempt]:
        attempts = [
            a
            for a in self._attempts.values()
            if a.test_id == test_id and a.user_id == user_id
        ]
        return sorted(attempts, key=lambda a: a.attempt_number)

    async def get_in_progress(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None:
        for a in self._attempts.values():
            if a.test_id == test_id and a.user_id == user_id and a.status == "in_progress":
                return a
        return None

    async def last_completed(
        self, test_id: UUID, user_id: UUID
    ) -> TestAttempt | None:
        completed = [
            a
            for a in await self.list_attempts(test_id, user_id)
            if a.status == "completed"
        ]
        return completed[-1] if completed else None

    async def list_in_progress(self) -> list[TestAttempt]:
        return [a for a in self._attempts.values() if a.status == "in_progress"]

    async def complete_attempt(
        self,
        attempt_id: UUID,
        *,
        score: int,
        correct_answers: int,
        completed_at: int,
        time_taken_minutes: int,
    ) -> TestAttempt | None:
        """Complete an in_progress attempt.  None if it was not in_progress."""
        a = self._attempts.get(attempt_id)
        if a is None or a.status != "in_progress":
            return None
        updated = replace(
            a,
            status="completed",
            score=score,
            correct_answers=correct_answers,
            completed_at=completed_at,
            time_taken_minutes=time_taken_minutes,
        )
        self._attempts[attempt_id] = updated
        return updated

    async def abandon_attempt(self, attempt_id: UUID) -> bool:
        a = self._attempts.get(attempt_id)
        if a is None or a.status != "in_progress":
            return False
        self._attempts[attempt_id] = replace(a, status="abandoned")
        return True

    async def passed_test_ids(
        self, user_id: UUID, tests: Sequence[Test]
    ) -> set[UUID]:
        """Tests with ANY completed attempt scoring at least the passing score."""
        by_id = {t.id: t for t in tests}
        return {
            a.test_id
            for a in self._attempts.values()
            if a.user_id == user_id
            and a.test_id in by_id
            and a.status == "completed"
            and a.score is not None
            and a.score >= by_id[a.test_id].passing_score
        }

    # --- answers ---

    async def add_answer(self, answer: AttemptAnswer) -> None:
        key = (answer.attempt_id, answer.question_id)
        if key in self._answers:
            raise DuplicateAnswerError(answer.attempt_id, answer.question_id)
        self._answers[key] = answer

    async def get_answer(
        self, attempt_id: UUID, question_id: UUID
    ) -> AttemptAnswer | None:
        return self._answers.get((attempt_id, question_id))

    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]:
        return [a for (aid, _), a in self._answers.items() if aid == attempt_id]
