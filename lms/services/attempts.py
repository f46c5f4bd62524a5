"""Test attempt lifecycle.

  start  -> in_progress
  answer    (in_progress only, write-once per question, graded on arrival)
  submit -> completed   (conditional update; a racing submit loses)
  abandon_stale -> abandoned   (operator-triggered)

Completed and abandoned attempts are terminal.  Abandoned attempts still
count toward ``max_attempts``.

Submission marks the attached lesson completed when the attempt passed or
``force_proceed`` was set, then recomputes course progress.  The recompute
runs in a savepoint and its failures are logged, never raised: the
attempt result stands regardless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from lms.core.config import SETTINGS
from lms.core.errors import (
    AttemptInProgressError,
    DuplicateAnswerError,
    InvalidStateError,
    MaxAttemptsReachedError,
    NoQuestionsError,
    NotEnrolledError,
    NotFoundError,
    TestNotPublishedError,
    WrongStatusError,
)
from lms.core.metrics import (
    ANSWERS_GRADED,
    ATTEMPTS_ABANDONED,
    ATTEMPTS_STARTED,
    ATTEMPTS_SUBMITTED,
    SIDE_EFFECT_FAILURES,
)
from lms.models.assessment import AttemptAnswer, Question, Test, TestAttempt
from lms.models.progress import ProgressSnapshot
from lms.repos.registry import LearningRepos
from lms.services.clock import Clock, utc_now
from lms.services.course_progress import CourseProgressAggregator
from lms.services.scoring import (
    grade,
    points_for,
    round_half_up,
    score_attempt,
    validate_answer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StartedAttempt:
    attempt: TestAttempt
    test: Test
    questions: list[Question]


@dataclass(frozen=True, slots=True)
class GradedAnswer:
    question_id: UUID
    is_correct: bool
    points_earned: int


@dataclass(frozen=True, slots=True)
class AttemptResult:
    attempt: TestAttempt
    passed: bool
    passing_score: int
    forced_proceed: bool = False
    progress: ProgressSnapshot | None = None


@dataclass(frozen=True, slots=True)
class ReviewedAnswer:
    question: Question
    answer: AttemptAnswer | None


@dataclass(frozen=True, slots=True)
class AttemptReview:
    attempt: TestAttempt
    test: Test
    passed: bool
    answers: list[ReviewedAnswer] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AttemptStatus:
    attempt: TestAttempt
    answered_questions: int
    elapsed_minutes: int
    time_limit_minutes: int | None


@dataclass(frozen=True, slots=True)
class AttemptHistory:
    test: Test
    attempts: list[TestAttempt]
    remaining_attempts: int
    best_score: int | None
    has_passed: bool
    can_start_new: bool


@dataclass(frozen=True, slots=True)
class ProceedResult:
    test: Test
    attempt: TestAttempt
    lesson_id: UUID | None
    progress: ProgressSnapshot | None = None


class AttemptService:
    def __init__(
        self,
        repos: LearningRepos,
        progress: CourseProgressAggregator,
        *,
        clock: Clock = utc_now,
        default_duration_minutes: int = SETTINGS.default_test_duration_minutes,
        abandon_grace_minutes: int = SETTINGS.attempt_abandon_grace_minutes,
    ) -> None:
        self._repos = repos
        self._progress = progress
        self._clock = clock
        self._default_duration = default_duration_minutes
        self._grace = abandon_grace_minutes

    # --- lifecycle ---

    async def start(self, test_id: UUID, user_id: UUID) -> StartedAttempt:
        test = await self._repos.catalog.get_test(test_id)
        if test is None:
            raise NotFoundError("test", test_id)
        if not test.is_published:
            raise TestNotPublishedError(test_id)

        count = await self._repos.attempts.count_attempts(test_id, user_id)
        if count >= test.max_attempts:
            last = await self._repos.attempts.last_completed(test_id, user_id)
            raise MaxAttemptsReachedError(
                max_attempts=test.max_attempts,
                current_attempts=count,
                last_score=last.score if last is not None else None,
                passed=last is not None and (last.score or 0) >= test.passing_score,
                last_attempt_id=last.id if last is not None else None,
            )

        existing = await self._repos.attempts.get_in_progress(test_id, user_id)
        if existing is not None:
            raise AttemptInProgressError(test_id, existing.id)

        questions = await self._repos.catalog.list_questions(test_id)
        if not questions:
            raise NoQuestionsError(test_id)

        attempt = TestAttempt.new(
            test_id=test_id,
            user_id=user_id,
            attempt_number=count + 1,
            started_at=self._clock(),
            total_questions=len(questions),
        )
        # A concurrent start surfaces here as AttemptInProgressError.
        await self._repos.attempts.add_attempt(attempt)

        ATTEMPTS_STARTED.inc()
        logger.info(
            "Attempt %d started",
            attempt.attempt_number,
            extra=_extra(attempt),
        )
        return StartedAttempt(attempt=attempt, test=test, questions=questions)

    async def answer(
        self,
        attempt_id: UUID,
        user_id: UUID,
        question_id: UUID,
        *,
        selected_answer: int | None = None,
        answer_text: str | None = None,
        test_id: UUID | None = None,
    ) -> GradedAnswer:
        attempt = await self._owned_attempt(attempt_id, user_id, test_id)
        if attempt.status != "in_progress":
            raise WrongStatusError(attempt_id, attempt.status, "in_progress")

        question = await self._repos.catalog.get_question(question_id)
        if question is None or question.test_id != attempt.test_id:
            raise NotFoundError("question", question_id)

        if await self._repos.attempts.get_answer(attempt_id, question_id) is not None:
            raise DuplicateAnswerError(attempt_id, question_id)

        validate_answer(question, selected_answer, answer_text)
        is_correct = grade(question, selected_answer, answer_text)
        answer = AttemptAnswer(
            attempt_id=attempt_id,
            question_id=question_id,
            is_correct=is_correct,
            points_earned=points_for(question, is_correct),
            answered_at=self._clock(),
            selected_answer=(
                selected_answer if question.question_type != "short_answer" else None
            ),
            answer_text=(
                answer_text.strip()
                if question.question_type == "short_answer" and answer_text
                else None
            ),
        )
        await self._repos.attempts.add_answer(answer)

        ANSWERS_GRADED.labels(
            question_type=question.question_type,
            correct="true" if is_correct else "false",
        ).inc()
        return GradedAnswer(
            question_id=question_id,
            is_correct=is_correct,
            points_earned=answer.points_earned,
        )

    async def submit(
        self,
        attempt_id: UUID,
        user_id: UUID,
        *,
        force_proceed: bool = False,
        test_id: UUID | None = None,
    ) -> AttemptResult:
        attempt = await self._owned_attempt(attempt_id, user_id, test_id)
        if attempt.status != "in_progress":
            raise WrongStatusError(attempt_id, attempt.status, "in_progress")

        test = await self._repos.catalog.get_test(attempt.test_id)
        if test is None:
            raise NotFoundError("test", attempt.test_id)

        questions = await self._repos.catalog.list_questions(test.id)
        answers = await self._repos.attempts.list_answers(attempt_id)
        score, correct = score_attempt(questions, answers)

        now = self._clock()
        completed = await self._repos.attempts.complete_attempt(
            attempt_id,
            score=score,
            correct_answers=correct,
            completed_at=now,
            time_taken_minutes=round_half_up((now - attempt.started_at) / 60),
        )
        if completed is None:
            current = await self._repos.attempts.get_attempt(attempt_id)
            status = current.status if current is not None else "missing"
            raise WrongStatusError(attempt_id, status, "in_progress")

        passed = score >= test.passing_score
        if passed:
            outcome = "passed"
        elif force_proceed:
            outcome = "forced"
        else:
            outcome = "failed"
        ATTEMPTS_SUBMITTED.labels(outcome=outcome).inc()
        logger.info(
            "Attempt submitted score=%d outcome=%s",
            score,
            outcome,
            extra=_extra(completed),
        )

        if (passed or force_proceed) and test.lesson_id is not None:
            await self._repos.progress.mark_lesson_completed(
                user_id, test.lesson_id, now=now
            )
        snapshot = await self._refresh_progress(test, user_id)

        return AttemptResult(
            attempt=completed,
            passed=passed,
            passing_score=test.passing_score,
            forced_proceed=force_proceed and not passed,
            progress=snapshot,
        )

    async def proceed(self, test_id: UUID, user_id: UUID) -> ProceedResult:
        """Move past a test whose attempts are used up, without passing it."""
        test = await self._repos.catalog.get_test(test_id)
        if test is None:
            raise NotFoundError("test", test_id)

        count = await self._repos.attempts.count_attempts(test_id, user_id)
        if count < test.max_attempts:
            raise InvalidStateError(
                "Attempts remain for this test",
                {"max_attempts": test.max_attempts, "current_attempts": count},
            )
        last = await self._repos.attempts.last_completed(test_id, user_id)
        if last is None:
            raise InvalidStateError(
                "No completed attempt to proceed from", {"test_id": str(test_id)}
            )

        course_id = await self._course_of(test)
        if course_id is not None and (
            await self._repos.progress.get_enrollment(user_id, course_id=course_id)
            is None
        ):
            raise NotEnrolledError("course", course_id)

        if test.lesson_id is not None:
            await self._repos.progress.mark_lesson_completed(
                user_id, test.lesson_id, now=self._clock()
            )
        logger.info("Proceeding past test", extra=_extra(last))
        snapshot = await self._refresh_progress(test, user_id)
        return ProceedResult(
            test=test, attempt=last, lesson_id=test.lesson_id, progress=snapshot
        )

    # --- reads ---

    async def results(
        self, attempt_id: UUID, user_id: UUID, *, test_id: UUID | None = None
    ) -> AttemptReview:
        attempt = await self._owned_attempt(attempt_id, user_id, test_id)
        if attempt.status != "completed":
            raise WrongStatusError(attempt_id, attempt.status, "completed")
        test = await self._repos.catalog.get_test(attempt.test_id)
        if test is None:
            raise NotFoundError("test", attempt.test_id)

        questions = await self._repos.catalog.list_questions(test.id)
        by_question = {
            a.question_id: a for a in await self._repos.attempts.list_answers(attempt_id)
        }
        return AttemptReview(
            attempt=attempt,
            test=test,
            passed=(attempt.score or 0) >= test.passing_score,
            answers=[ReviewedAnswer(q, by_question.get(q.id)) for q in questions],
        )

    async def status(
        self, attempt_id: UUID, user_id: UUID, *, test_id: UUID | None = None
    ) -> AttemptStatus:
        attempt = await self._owned_attempt(attempt_id, user_id, test_id)
        test = await self._repos.catalog.get_test(attempt.test_id)
        answers = await self._repos.attempts.list_answers(attempt_id)
        end = attempt.completed_at if attempt.completed_at is not None else self._clock()
        return AttemptStatus(
            attempt=attempt,
            answered_questions=len(answers),
            elapsed_minutes=max(0, (end - attempt.started_at) // 60),
            time_limit_minutes=test.duration_minutes if test is not None else None,
        )

    async def my_attempts(self, test_id: UUID, user_id: UUID) -> AttemptHistory:
        test = await self._repos.catalog.get_test(test_id)
        if test is None:
            raise NotFoundError("test", test_id)

        attempts = await self._repos.attempts.list_attempts(test_id, user_id)
        scores = [a.score for a in attempts if a.status == "completed" and a.score is not None]
        best = max(scores) if scores else None
        in_progress = any(a.status == "in_progress" for a in attempts)
        remaining = max(0, test.max_attempts - len(attempts))
        return AttemptHistory(
            test=test,
            attempts=attempts,
            remaining_attempts=remaining,
            best_score=best,
            has_passed=best is not None and best >= test.passing_score,
            can_start_new=test.is_published and remaining > 0 and not in_progress,
        )

    # --- maintenance ---

    async def find_stale(self, now: int | None = None) -> list[TestAttempt]:
        """In-progress attempts past their time limit plus the grace period."""
        now = self._clock() if now is None else now
        limits: dict[UUID, int] = {}
        stale = []
        for attempt in await self._repos.attempts.list_in_progress():
            if attempt.test_id not in limits:
                test = await self._repos.catalog.get_test(attempt.test_id)
                duration = (
                    test.duration_minutes
                    if test is not None and test.duration_minutes
                    else self._default_duration
                )
                limits[attempt.test_id] = (duration + self._grace) * 60
            if now - attempt.started_at > limits[attempt.test_id]:
                stale.append(attempt)
        return stale

    async def abandon_stale(self, now: int | None = None) -> list[TestAttempt]:
        abandoned = []
        for attempt in await self.find_stale(now):
            if await self._repos.attempts.abandon_attempt(attempt.id):
                abandoned.append(attempt)
                ATTEMPTS_ABANDONED.inc()
                logger.info("Attempt abandoned", extra=_extra(attempt))
        return abandoned

    # --- helpers ---

    async def _owned_attempt(
        self, attempt_id: UUID, user_id: UUID, test_id: UUID | None = None
    ) -> TestAttempt:
        attempt = await self._repos.attempts.get_attempt(attempt_id)
        # Someone else's attempt, or one under another test, reads as missing.
        if (
            attempt is None
            or attempt.user_id != user_id
            or (test_id is not None and attempt.test_id != test_id)
        ):
            raise NotFoundError("attempt", attempt_id)
        return attempt

    async def _course_of(self, test: Test) -> UUID | None:
        if test.course_id is not None:
            return test.course_id
        if test.lesson_id is None:
            return None
        lesson = await self._repos.catalog.get_lesson(test.lesson_id)
        return lesson.course_id if lesson is not None else None

    async def _refresh_progress(
        self, test: Test, user_id: UUID
    ) -> ProgressSnapshot | None:
        extra = {"user_id": str(user_id), "test_id": str(test.id)}
        try:
            async with self._repos.savepoint():
                course_id = await self._course_of(test)
                if course_id is None:
                    return None
                return await self._progress.recompute(user_id, course_id)
        except NotEnrolledError:
            logger.info("No course enrollment; progress not updated", extra=extra)
        except Exception:
            SIDE_EFFECT_FAILURES.labels(effect="progress").inc()
            logger.exception("Progress recompute failed", extra=extra)
        return None


def _extra(attempt: TestAttempt) -> dict[str, str]:
    return {
        "attempt_id": str(attempt.id),
        "test_id": str(attempt.test_id),
        "user_id": str(attempt.user_id),
    }
