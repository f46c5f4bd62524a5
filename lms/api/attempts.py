"""Test attempt endpoints (under /v1/tests).

Questions are served without their correct answers.  Start, answer and
submit are rate limited per user.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from lms.api.dependencies import CurrentUser, Services
from lms.api.ratelimit import require_rate_limit
from lms.models.assessment import TestAttempt
from lms.models.progress import ProgressSnapshot
from lms.services.scoring import display_answer

router = APIRouter(prefix="/v1/tests", tags=["tests"])

_rate_limited = [Depends(require_rate_limit())]


class QuestionOut(BaseModel):
    id: str
    question: str
    question_type: str
    options: list[str]
    points: int
    order_index: int


class AttemptOut(BaseModel):
    id: str
    test_id: str
    attempt_number: int
    status: str
    started_at: int
    total_questions: int
    score: int | None = None
    correct_answers: int | None = None
    completed_at: int | None = None
    time_taken_minutes: int | None = None

    @staticmethod
    def of(attempt: TestAttempt) -> AttemptOut:
        return AttemptOut(
            id=str(attempt.id),
            test_id=str(attempt.test_id),
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            started_at=attempt.started_at,
            total_questions=attempt.total_questions,
            score=attempt.score,
            correct_answers=attempt.correct_answers,
            completed_at=attempt.completed_at,
            time_taken_minutes=attempt.time_taken_minutes,
        )


class StartOut(BaseModel):
    attempt: AttemptOut
    title: str
    passing_score: int
    duration_minutes: int | None
    questions: list[QuestionOut]


class AnswerIn(BaseModel):
    question_id: UUID
    selected_answer: int | None = None
    answer_text: str | None = None


class AnswerOut(BaseModel):
    question_id: str
    is_correct: bool
    points_earned: int


class SubmitIn(BaseModel):
    force_proceed: bool = False


class ProgressOut(BaseModel):
    progress: int
    status: str
    newly_completed: bool

    @staticmethod
    def of(snapshot: ProgressSnapshot | None) -> ProgressOut | None:
        if snapshot is None:
            return None
        return ProgressOut(
            progress=snapshot.progress,
            status=snapshot.status,
            newly_completed=snapshot.newly_completed,
        )


class SubmitOut(BaseModel):
    attempt_id: str
    score: int
    correct_answers: int
    total_questions: int
    time_taken_minutes: int
    passed: bool
    passing_score: int
    forced_proceed: bool
    course_progress: ProgressOut | None = None


class ReviewItemOut(BaseModel):
    question_id: str
    question: str
    question_type: str
    options: list[str]
    points: int
    answered: bool
    is_correct: bool
    points_earned: int
    your_answer: str | None = None
    correct_answer: str | None = None


class ResultsOut(BaseModel):
    attempt: AttemptOut
    passed: bool
    passing_score: int
    answers: list[ReviewItemOut]


class StatusOut(BaseModel):
    attempt: AttemptOut
    answered_questions: int
    elapsed_minutes: int
    time_limit_minutes: int | None = None


class HistoryOut(BaseModel):
    test_id: str
    max_attempts: int
    remaining_attempts: int
    best_score: int | None
    has_passed: bool
    can_start_new: bool
    attempts: list[AttemptOut]


class ProceedOut(BaseModel):
    test_id: str
    last_attempt_id: str
    lesson_id: str | None
    course_progress: ProgressOut | None = None


@router.post(
    "/{test_id}/start",
    response_model=StartOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=_rate_limited,
)
async def start_attempt(
    test_id: UUID, principal: CurrentUser, services: Services
) -> StartOut:
    started = await services.attempts.start(test_id, principal.user_id)
    return StartOut(
        attempt=AttemptOut.of(started.attempt),
        title=started.test.title,
        passing_score=started.test.passing_score,
        duration_minutes=started.test.duration_minutes,
        questions=[
            QuestionOut(
                id=str(q.id),
                question=q.question,
                question_type=q.question_type,
                options=list(q.display_options),
                points=q.points,
                order_index=q.order_index,
            )
            for q in started.questions
        ],
    )


@router.put(
    "/{test_id}/attempts/{attempt_id}/answer",
    response_model=AnswerOut,
    dependencies=_rate_limited,
)
async def answer_question(
    test_id: UUID,
    attempt_id: UUID,
    body: AnswerIn,
    principal: CurrentUser,
    services: Services,
) -> AnswerOut:
    graded = await services.attempts.answer(
        attempt_id,
        principal.user_id,
        body.question_id,
        selected_answer=body.selected_answer,
        answer_text=body.answer_text,
        test_id=test_id,
    )
    return AnswerOut(
        question_id=str(graded.question_id),
        is_correct=graded.is_correct,
        points_earned=graded.points_earned,
    )


@router.post(
    "/{test_id}/attempts/{attempt_id}/submit",
    response_model=SubmitOut,
    dependencies=_rate_limited,
)
async def submit_attempt(
    test_id: UUID,
    attempt_id: UUID,
    principal: CurrentUser,
    services: Services,
    body: SubmitIn | None = None,
) -> SubmitOut:
    result = await services.attempts.submit(
        attempt_id,
        principal.user_id,
        force_proceed=body.force_proceed if body is not None else False,
        test_id=test_id,
    )
    attempt = result.attempt
    return SubmitOut(
        attempt_id=str(attempt.id),
        score=attempt.score or 0,
        correct_answers=attempt.correct_answers or 0,
        total_questions=attempt.total_questions,
        time_taken_minutes=attempt.time_taken_minutes or 0,
        passed=result.passed,
        passing_score=result.passing_score,
        forced_proceed=result.forced_proceed,
        course_progress=ProgressOut.of(result.progress),
    )


@router.get("/{test_id}/attempts/{attempt_id}/results", response_model=ResultsOut)
async def attempt_results(
    test_id: UUID, attempt_id: UUID, principal: CurrentUser, services: Services
) -> ResultsOut:
    review = await services.attempts.results(
        attempt_id, principal.user_id, test_id=test_id
    )
    items = []
    for reviewed in review.answers:
        q, a = reviewed.question, reviewed.answer
        if q.question_type == "short_answer":
            yours = a.answer_text if a is not None else None
            correct = q.correct_answer_text
        else:
            yours = display_answer(q, a.selected_answer) if a is not None else None
            correct = display_answer(q, q.correct_answer)
        items.append(
            ReviewItemOut(
                question_id=str(q.id),
                question=q.question,
                question_type=q.question_type,
                options=list(q.display_options),
                points=q.points,
                answered=a is not None,
                is_correct=a is not None and a.is_correct,
                points_earned=a.points_earned if a is not None else 0,
                your_answer=yours,
                correct_answer=correct,
            )
        )
    return ResultsOut(
        attempt=AttemptOut.of(review.attempt),
        passed=review.passed,
        passing_score=review.test.passing_score,
        answers=items,
    )


@router.get("/{test_id}/attempts/{attempt_id}/status", response_model=StatusOut)
async def attempt_status(
    test_id: UUID, attempt_id: UUID, principal: CurrentUser, services: Services
) -> StatusOut:
    current = await services.attempts.status(
        attempt_id, principal.user_id, test_id=test_id
    )
    return StatusOut(
        attempt=AttemptOut.of(current.attempt),
        answered_questions=current.answered_questions,
        elapsed_minutes=current.elapsed_minutes,
        time_limit_minutes=current.time_limit_minutes,
    )


@router.get("/{test_id}/my-attempts", response_model=HistoryOut)
async def my_attempts(
    test_id: UUID, principal: CurrentUser, services: Services
) -> HistoryOut:
    history = await services.attempts.my_attempts(test_id, principal.user_id)
    return HistoryOut(
        test_id=str(test_id),
        max_attempts=history.test.max_attempts,
        remaining_attempts=history.remaining_attempts,
        best_score=history.best_score,
        has_passed=history.has_passed,
        can_start_new=history.can_start_new,
        attempts=[AttemptOut.of(a) for a in history.attempts],
    )


@router.post("/{test_id}/proceed", response_model=ProceedOut)
async def proceed(
    test_id: UUID, principal: CurrentUser, services: Services
) -> ProceedOut:
    result = await services.attempts.proceed(test_id, principal.user_id)
    return ProceedOut(
        test_id=str(test_id),
        last_attempt_id=str(result.attempt.id),
        lesson_id=str(result.lesson_id) if result.lesson_id else None,
        course_progress=ProgressOut.of(result.progress),
    )
