"""Course endpoints: lesson map with unlock state, enrollment, progress."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel

from lms.api.dependencies import CurrentUser, Services
from lms.models.progress import Enrollment

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class LessonAccessOut(BaseModel):
    id: str
    title: str
    order_index: int
    duration_minutes: int
    is_unlocked: bool
    is_completed: bool
    test_passed: bool
    prerequisite_lesson_id: str | None = None


class NextLessonOut(BaseModel):
    course_id: str
    lesson: LessonAccessOut | None
    course_finished: bool


class EnrollmentOut(BaseModel):
    id: str
    user_id: str
    course_id: str | None = None
    class_id: str | None = None
    status: str
    progress: int
    enrolled_at: int
    completed_at: int | None = None

    @staticmethod
    def of(enrollment: Enrollment) -> EnrollmentOut:
        return EnrollmentOut(
            id=str(enrollment.id),
            user_id=str(enrollment.user_id),
            course_id=str(enrollment.course_id) if enrollment.course_id else None,
            class_id=str(enrollment.class_id) if enrollment.class_id else None,
            status=enrollment.status,
            progress=enrollment.progress,
            enrolled_at=enrollment.enrolled_at,
            completed_at=enrollment.completed_at,
        )


class ProgressOut(BaseModel):
    course_id: str
    progress: int
    status: str


@router.get("/{course_id}/lessons", response_model=list[LessonAccessOut])
async def list_lessons(
    course_id: UUID, principal: CurrentUser, services: Services
) -> list[LessonAccessOut]:
    accesses = await services.unlock.evaluate_course(course_id, principal.user_id)
    return [
        LessonAccessOut(
            id=str(a.lesson.id),
            title=a.lesson.title,
            order_index=a.lesson.order_index,
            duration_minutes=a.lesson.duration_minutes,
            is_unlocked=a.is_unlocked,
            is_completed=a.is_completed,
            test_passed=a.test_passed,
            prerequisite_lesson_id=str(a.prerequisite_id) if a.prerequisite_id else None,
        )
        for a in accesses
    ]


@router.get("/{course_id}/next-lesson", response_model=NextLessonOut)
async def next_lesson(
    course_id: UUID, principal: CurrentUser, services: Services
) -> NextLessonOut:
    accesses = await services.unlock.evaluate_course(course_id, principal.user_id)
    for a in accesses:
        if a.is_unlocked and not a.is_completed:
            return NextLessonOut(
                course_id=str(course_id),
                lesson=LessonAccessOut(
                    id=str(a.lesson.id),
                    title=a.lesson.title,
                    order_index=a.lesson.order_index,
                    duration_minutes=a.lesson.duration_minutes,
                    is_unlocked=True,
                    is_completed=False,
                    test_passed=a.test_passed,
                ),
                course_finished=False,
            )
    return NextLessonOut(
        course_id=str(course_id),
        lesson=None,
        course_finished=bool(accesses) and all(a.is_completed for a in accesses),
    )


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: UUID, principal: CurrentUser, services: Services
) -> EnrollmentOut:
    enrollment = await services.enrollment.enroll_in_course(
        principal.user_id, course_id
    )
    return EnrollmentOut.of(enrollment)


@router.get("/{course_id}/progress", response_model=ProgressOut)
async def course_progress(
    course_id: UUID, principal: CurrentUser, services: Services
) -> ProgressOut:
    snapshot = await services.progress.recompute(principal.user_id, course_id)
    return ProgressOut(
        course_id=str(course_id), progress=snapshot.progress, status=snapshot.status
    )
