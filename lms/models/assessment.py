from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")

# True/false questions are answered by index into this pair.
TRUE_FALSE_OPTIONS = ("False", "True")


@dataclass(frozen=True, slots=True)
class Test:
    """A graded test, attached to a course, a lesson, or both."""

    id: UUID
    title: str
    course_id: UUID | None = None
    lesson_id: UUID | None = None
    passing_score: int = 70  # 0-100
    max_attempts: int = 3  # >= 1
    duration_minutes: int | None = None
    is_published: bool = True

    @staticmethod
    def new(
        *,
        title: str,
        course_id: UUID | None = None,
        lesson_id: UUID | None = None,
        passing_score: int = 70,
        max_attempts: int = 3,
        duration_minutes: int | None = None,
        is_published: bool = True,
    ) -> Test:
        if course_id is None and lesson_id is None:
            raise ValueError("a test needs a course_id or a lesson_id")
        return Test(
            id=uuid4(),
            title=title,
            course_id=course_id,
            lesson_id=lesson_id,
            passing_score=passing_score,
            max_attempts=max_attempts,
            duration_minutes=duration_minutes,
            is_published=is_published,
        )


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    test_id: UUID
    question: str
    question_type: str  # multiple_choice|true_false|short_answer
    options: tuple[str, ...] = ()
    correct_answer: int | None = None  # option index (multiple_choice, true_false)
    correct_answer_text: str | None = None  # short_answer
    points: int = 1
    order_index: int = 1

    @property
    def display_options(self) -> tuple[str, ...]:
        if self.question_type == "true_false":
            return TRUE_FALSE_OPTIONS
        return self.options

    @staticmethod
    def new(
        *,
        test_id: UUID,
        question: str,
        question_type: str,
        options: tuple[str, ...] = (),
        correct_answer: int | None = None,
        correct_answer_text: str | None = None,
        points: int = 1,
        order_index: int = 1,
    ) -> Question:
        if question_type not in QUESTION_TYPES:
            raise ValueError(f"unknown question_type {question_type!r}")
        return Question(
            id=uuid4(),
            test_id=test_id,
            question=question,
            question_type=question_type,
            options=tuple(options),
            correct_answer=correct_answer,
            correct_answer_text=correct_answer_text,
            points=points,
            order_index=order_index,
        )


@dataclass(frozen=True, slots=True)
class TestAttempt:
    id: UUID
    test_id: UUID
    user_id: UUID
    attempt_number: int
    started_at: int
    total_questions: int
    status: str = "in_progress"  # in_progress|completed|abandoned
    score: int | None = None
    correct_answers: int | None = None
    completed_at: int | None = None
    time_taken_minutes: int | None = None

    @staticmethod
    def new(
        *,
        test_id: UUID,
        user_id: UUID,
        attempt_number: int,
        started_at: int,
        total_questions: int,
    ) -> TestAttempt:
        return TestAttempt(
            id=uuid4(),
            test_id=test_id,
            user_id=user_id,
            attempt_number=attempt_number,
            started_at=started_at,
            total_questions=total_questions,
        )


@dataclass(frozen=True, slots=True)
class AttemptAnswer:
    """Write-once, graded on arrival."""

    attempt_id: UUID
    question_id: UUID
    is_correct: bool
    points_earned: int
    answered_at: int
    selected_answer: int | None = None
    answer_text: str | None = None
