"""Course progress aggregation and the one-way completion transition."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from lms.core import errors
from lms.models.course import Lesson
from lms.services.course_progress import compute_progress
from lms.services.task_queue import CERTIFICATE_RENDER_QUEUE
from tests.conftest import LEARNER_ID, World

# ---- arithmetic ----


@pytest.mark.parametrize(
    ("lessons", "completed", "tests", "passed", "expected"),
    [
        (4, 2, 2, 1, 50),
        (3, 1, 0, 0, 33),
        (2, 1, 0, 0, 50),
        (0, 0, 4, 3, 75),
        (8, 5, 0, 0, 63),  # 62.5 rounds half up
        (0, 0, 0, 0, 0),
        (2, 2, 1, 1, 100),
    ],
)
def test_compute_progress(lessons, completed, tests, passed, expected) -> None:
    assert compute_progress(lessons, completed, tests, passed) == expected


# ---- scenario: lessons only ----


def test_completing_all_lessons_completes_enrollment(world: World) -> None:
    async def scenario():
        course = await world.course()
        first, second = await world.lessons(course, 2)
        await world.enroll(course)

        await world.services.lessons.record(first.id, LEARNER_ID)
        unlocked = await world.services.unlock.is_unlocked(second.id, LEARNER_ID)
        halfway = await world.repos.progress.get_enrollment(
            LEARNER_ID, course_id=course.id
        )

        update = await world.services.lessons.record(second.id, LEARNER_ID)
        final = await world.repos.progress.get_enrollment(
            LEARNER_ID, course_id=course.id
        )
        return unlocked, halfway, update, final

    unlocked, halfway, update, final = asyncio.run(scenario())
    assert unlocked is True
    assert halfway.progress == 50
    assert halfway.status == "in_progress"
    assert update.course_progress.newly_completed is True
    assert final.progress == 100
    assert final.status == "completed"
    assert final.completed_at is not None


def test_completion_is_never_reversed(world: World) -> None:
    async def scenario():
        course = await world.course()
        (only,) = await world.lessons(course, 1)
        enrollment = await world.enroll(course)
        await world.services.lessons.record(only.id, LEARNER_ID)

        # A lesson added later would drop the ratio; the enrollment stays put.
        await world.repos.catalog.add_lesson(
            Lesson.new(course_id=course.id, title="Bonus", order_index=2)
        )
        snapshot = await world.services.progress.recompute(LEARNER_ID, course.id)
        stored = await world.repos.progress.get_enrollment(
            LEARNER_ID, course_id=course.id
        )
        return enrollment, snapshot, stored

    enrollment, snapshot, stored = asyncio.run(scenario())
    assert snapshot.status == "completed"
    assert snapshot.progress == 100
    assert snapshot.newly_completed is False
    assert stored.status == "completed"


def test_certificate_engine_runs_only_on_first_completion(world: World) -> None:
    async def scenario():
        course = await world.course(certification="Python Basics Certificate")
        (only,) = await world.lessons(course, 1)
        await world.enroll(course)
        await world.services.lessons.record(only.id, LEARNER_ID)
        await world.services.progress.recompute(LEARNER_ID, course.id)
        await world.services.progress.recompute(LEARNER_ID, course.id)
        certs = await world.repos.certifications.list_for_user(LEARNER_ID)
        renders = await world.queue.queue_length(CERTIFICATE_RENDER_QUEUE)
        return certs, renders

    certs, renders = asyncio.run(scenario())
    assert len(certs) == 1
    assert renders == 1


def test_certificate_failure_does_not_fail_completion(
    world: World, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def explode(*args, **kwargs):
        raise RuntimeError("certificate store down")

    monkeypatch.setattr(world.services.certificates, "check_and_award", explode)

    async def scenario():
        course = await world.course(certification="Cert")
        (only,) = await world.lessons(course, 1)
        await world.enroll(course)
        update = await world.services.lessons.record(only.id, LEARNER_ID)
        stored = await world.repos.progress.get_enrollment(
            LEARNER_ID, course_id=course.id
        )
        return update, stored

    update, stored = asyncio.run(scenario())
    assert update.course_progress.status == "completed"
    assert stored.status == "completed"


def test_recompute_without_enrollment_raises(world: World) -> None:
    async def scenario():
        course = await world.course()
        await world.lessons(course, 1)
        await world.services.progress.recompute(LEARNER_ID, course.id)

    with pytest.raises(errors.NotEnrolledError):
        asyncio.run(scenario())


def test_mixed_lessons_and_tests_weigh_half_each(world: World) -> None:
    async def scenario():
        course = await world.course()
        first, second = await world.lessons(course, 2)
        test, questions = await world.test_with_questions(course_id=course.id)
        await world.enroll(course)

        await world.services.lessons.record(first.id, LEARNER_ID)
        lessons_half = await world.services.progress.recompute(LEARNER_ID, course.id)

        started = await world.services.attempts.start(test.id, LEARNER_ID)
        for q in questions:
            await world.services.attempts.answer(
                started.attempt.id, LEARNER_ID, q.id, selected_answer=1
            )
        result = await world.services.attempts.submit(started.attempt.id, LEARNER_ID)
        return lessons_half, result

    lessons_half, result = asyncio.run(scenario())
    assert lessons_half.progress == 25
    # one of two lessons (25) + the only test passed (50)
    assert result.progress.progress == 75
    assert result.progress.status == "in_progress"


def test_dropped_enrollment_keeps_status(world: World) -> None:
    async def scenario():
        course = await world.course()
        first, _ = await world.lessons(course, 2)
        enrollment = await world.enroll(course)
        world.repos.progress._enrollments[enrollment.id] = replace(
            enrollment, status="dropped"
        )
        await world.repos.progress.mark_lesson_completed(
            LEARNER_ID, first.id, now=world.clock()
        )
        return await world.services.progress.recompute(LEARNER_ID, course.id)

    snapshot = asyncio.run(scenario())
    assert snapshot.progress == 50
    assert snapshot.status == "dropped"


# ---- classes ----


def test_class_progress_reported_by_instructor(world: World) -> None:
    async def scenario():
        c = await world.course_class(certification="Attendance")
        await world.services.enrollment.enroll_in_class(LEARNER_ID, c.id)
        partial = await world.services.progress.record_class_progress(
            LEARNER_ID, c.id, 40
        )
        full = await world.services.progress.record_class_progress(
            LEARNER_ID, c.id, 100
        )
        certs = await world.repos.certifications.list_for_user(LEARNER_ID)
        return partial, full, certs

    partial, full, certs = asyncio.run(scenario())
    assert (partial.progress, partial.status) == (40, "in_progress")
    assert full.newly_completed is True
    assert len(certs) == 1
    assert certs[0].certification_name == "Evening Cohort - Certificate of Attendance"


def test_class_progress_out_of_range_rejected(world: World) -> None:
    with pytest.raises(ValueError):
        asyncio.run(
            world.services.progress.record_class_progress(LEARNER_ID, LEARNER_ID, 101)
        )


def test_draft_tests_do_not_count(world: World) -> None:
    async def scenario():
        course = await world.course()
        (only,) = await world.lessons(course, 1)
        await world.test_with_questions(course_id=course.id, is_published=False)
        await world.enroll(course)
        await world.services.lessons.record(only.id, LEARNER_ID)
        return await world.repos.progress.get_enrollment(
            LEARNER_ID, course_id=course.id
        )

    enrollment = asyncio.run(scenario())
    assert enrollment.progress == 100
    assert enrollment.status == "completed"
