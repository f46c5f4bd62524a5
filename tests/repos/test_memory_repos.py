"""In-memory repositories must refuse what the database constraints refuse."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from lms.core.errors import (
    AlreadyEnrolledError,
    AttemptInProgressError,
    DuplicateAnswerError,
    DuplicateCertificateError,
    VerificationCodeTakenError,
)
from lms.models import assessment
from lms.models.certification import Certification
from lms.models.course import Course, Lesson
from lms.models.progress import Enrollment
from lms.repos.attempt_repo import InMemoryAttemptRepo
from lms.repos.catalog_repo import InMemoryCatalogRepo
from lms.repos.certification_repo import InMemoryCertificationRepo
from lms.repos.progress_repo import InMemoryProgressRepo
from tests.conftest import LEARNER_ID, OTHER_LEARNER_ID, T0


def _attempt(test_id: uuid.UUID, number: int = 1, user_id=LEARNER_ID) -> assessment.TestAttempt:
    return assessment.TestAttempt.new(
        test_id=test_id,
        user_id=user_id,
        attempt_number=number,
        started_at=T0,
        total_questions=2,
    )


def _cert(code: str, *, user_id=LEARNER_ID, course_id=None, issued_at=T0) -> Certification:
    return Certification.new(
        user_id=user_id,
        certification_name="Python Basics - Certificate",
        issuer="LMS Learning Platform",
        issued_at=issued_at,
        verification_code=code,
        course_id=course_id or uuid.uuid4(),
    )


# ---- attempts ----


def test_second_in_progress_attempt_is_refused() -> None:
    repo = InMemoryAttemptRepo()
    test_id = uuid.uuid4()

    async def scenario():
        first = _attempt(test_id, 1)
        await repo.add_attempt(first)
        with pytest.raises(AttemptInProgressError) as exc_info:
            await repo.add_attempt(_attempt(test_id, 2))
        assert exc_info.value.details["attempt_id"] == str(first.id)

        # Another learner is unaffected.
        await repo.add_attempt(_attempt(test_id, 1, user_id=OTHER_LEARNER_ID))

    asyncio.run(scenario())


def test_reused_attempt_number_is_refused_after_completion() -> None:
    repo = InMemoryAttemptRepo()
    test_id = uuid.uuid4()

    async def scenario():
        first = _attempt(test_id, 1)
        await repo.add_attempt(first)
        await repo.complete_attempt(
            first.id, score=40, correct_answers=1, completed_at=T0 + 60, time_taken_minutes=1
        )
        with pytest.raises(AttemptInProgressError):
            await repo.add_attempt(_attempt(test_id, 1))
        await repo.add_attempt(_attempt(test_id, 2))
        assert await repo.count_attempts(test_id, LEARNER_ID) == 2

    asyncio.run(scenario())


def test_complete_and_abandon_only_touch_in_progress() -> None:
    repo = InMemoryAttemptRepo()
    test_id = uuid.uuid4()

    async def scenario():
        a = _attempt(test_id)
        await repo.add_attempt(a)
        assert await repo.abandon_attempt(a.id) is True
        assert await repo.abandon_attempt(a.id) is False
        done = await repo.complete_attempt(
            a.id, score=100, correct_answers=2, completed_at=T0, time_taken_minutes=0
        )
        assert done is None
        assert (await repo.get_attempt(a.id)).status == "abandoned"
        assert await repo.list_in_progress() == []

    asyncio.run(scenario())


def test_passed_test_ids_uses_each_tests_passing_score() -> None:
    repo = InMemoryAttemptRepo()
    course_id = uuid.uuid4()
    easy = assessment.Test.new(title="Easy", course_id=course_id, passing_score=50)
    hard = assessment.Test.new(title="Hard", course_id=course_id, passing_score=90)

    async def scenario():
        for test in (easy, hard):
            a = _attempt(test.id)
            await repo.add_attempt(a)
            await repo.complete_attempt(
                a.id, score=60, correct_answers=3, completed_at=T0, time_taken_minutes=5
            )
        assert await repo.passed_test_ids(LEARNER_ID, [easy, hard]) == {easy.id}
        assert await repo.passed_test_ids(OTHER_LEARNER_ID, [easy, hard]) == set()

    asyncio.run(scenario())


def test_answers_are_write_once() -> None:
    repo = InMemoryAttemptRepo()
    attempt_id, question_id = uuid.uuid4(), uuid.uuid4()
    answer = assessment.AttemptAnswer(
        attempt_id=attempt_id,
        question_id=question_id,
        is_correct=True,
        points_earned=1,
        answered_at=T0,
        selected_answer=1,
    )

    async def scenario():
        await repo.add_answer(answer)
        with pytest.raises(DuplicateAnswerError):
            await repo.add_answer(answer)
        assert await repo.list_answers(attempt_id) == [answer]

    asyncio.run(scenario())


# ---- enrollments and lesson progress ----


def test_enrollment_is_unique_per_user_and_scope() -> None:
    repo = InMemoryProgressRepo()
    course_id = uuid.uuid4()

    async def scenario():
        await repo.add_enrollment(
            Enrollment.new(user_id=LEARNER_ID, enrolled_at=T0, course_id=course_id)
        )
        with pytest.raises(AlreadyEnrolledError):
            await repo.add_enrollment(
                Enrollment.new(user_id=LEARNER_ID, enrolled_at=T0, course_id=course_id)
            )
        await repo.add_enrollment(
            Enrollment.new(user_id=OTHER_LEARNER_ID, enrolled_at=T0, course_id=course_id)
        )

    asyncio.run(scenario())


def test_enrollment_targets_exactly_one_scope() -> None:
    with pytest.raises(ValueError):
        Enrollment.new(user_id=LEARNER_ID, enrolled_at=T0)
    with pytest.raises(ValueError):
        Enrollment.new(
            user_id=LEARNER_ID,
            enrolled_at=T0,
            course_id=uuid.uuid4(),
            class_id=uuid.uuid4(),
        )


def test_completed_enrollment_is_frozen() -> None:
    repo = InMemoryProgressRepo()
    e = Enrollment.new(user_id=LEARNER_ID, enrolled_at=T0, course_id=uuid.uuid4())

    async def scenario():
        await repo.add_enrollment(e)
        assert await repo.mark_completed(e.id, now=T0 + 10) is True
        assert await repo.mark_completed(e.id, now=T0 + 20) is False
        assert await repo.set_progress(e.id, 40, "in_progress") is False
        stored = await repo.get_enrollment(LEARNER_ID, course_id=e.course_id)
        assert (stored.status, stored.progress, stored.completed_at) == (
            "completed",
            100,
            T0 + 10,
        )

    asyncio.run(scenario())


def test_lesson_completion_keeps_first_timestamp() -> None:
    repo = InMemoryProgressRepo()
    lesson_id = uuid.uuid4()

    async def scenario():
        await repo.record_time_spent(LEARNER_ID, lesson_id, 7, now=T0)
        await repo.mark_lesson_completed(LEARNER_ID, lesson_id, now=T0 + 5)
        again = await repo.mark_lesson_completed(LEARNER_ID, lesson_id, now=T0 + 50)
        assert again.completed_at == T0 + 5
        assert again.time_spent_minutes == 7
        assert await repo.completed_lesson_ids(LEARNER_ID, [lesson_id]) == {lesson_id}
        assert await repo.completed_lesson_ids(OTHER_LEARNER_ID, [lesson_id]) == set()

    asyncio.run(scenario())


# ---- catalog ----


def test_lesson_order_index_is_unique_within_a_course() -> None:
    repo = InMemoryCatalogRepo()
    course = Course.new(title="Python Basics")

    async def scenario():
        await repo.add_lesson(Lesson.new(course_id=course.id, title="One", order_index=1))
        with pytest.raises(ValueError, match="order_index"):
            await repo.add_lesson(
                Lesson.new(course_id=course.id, title="Also one", order_index=1)
            )
        other = Course.new(title="Other")
        await repo.add_lesson(Lesson.new(course_id=other.id, title="One", order_index=1))

    asyncio.run(scenario())


# ---- certifications ----


def test_certificate_unique_per_user_and_course() -> None:
    repo = InMemoryCertificationRepo()
    course_id = uuid.uuid4()

    async def scenario():
        await repo.add(_cert("AAAA1111", course_id=course_id))
        with pytest.raises(DuplicateCertificateError):
            await repo.add(_cert("BBBB2222", course_id=course_id))
        await repo.add(_cert("CCCC3333", user_id=OTHER_LEARNER_ID, course_id=course_id))

    asyncio.run(scenario())


def test_verification_codes_are_globally_unique() -> None:
    repo = InMemoryCertificationRepo()

    async def scenario():
        await repo.add(_cert("SAMECODE"))
        with pytest.raises(VerificationCodeTakenError):
            await repo.add(_cert("SAMECODE", user_id=OTHER_LEARNER_ID))
        assert await repo.code_exists("SAMECODE") is True
        assert await repo.code_exists("samecode") is False

    asyncio.run(scenario())


def test_missing_artifacts_oldest_first_and_limited() -> None:
    repo = InMemoryCertificationRepo()

    async def scenario():
        newer = _cert("NEWER000", issued_at=T0 + 100)
        older = _cert("OLDER000", issued_at=T0)
        rendered = _cert("DONE0000", issued_at=T0 - 100)
        for c in (newer, older, rendered):
            await repo.add(c)
        await repo.set_artifact_url(rendered.id, "https://files.example.com/done.pdf")

        missing = await repo.list_missing_artifacts()
        assert [c.id for c in missing] == [older.id, newer.id]
        assert [c.id for c in await repo.list_missing_artifacts(limit=1)] == [older.id]

    asyncio.run(scenario())
