"""Lesson endpoints.

Opening or recording a locked lesson answers 403 ``lesson_locked`` with
the prerequisite lesson in the error details.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, Field

from lms.api.dependencies import CurrentUser, Services
from lms.models.progress import LessonProgress

router = APIRouter(prefix="/v1/lessons", tags=["lessons"])


class LessonProgressOut(BaseModel):
    lesson_id: str
    is_completed: bool
    progress_percentage: int
    time_spent_minutes: int
    completed_at: int | None = None

    @staticmethod
    def of(lesson_id: UUID, progress: LessonProgress | None) -> LessonProgressOut:
        if progress is None:
            return LessonProgressOut(
                lesson_id=str(lesson_id),
                is_completed=False,
                progress_percentage=0,
                time_spent_minutes=0,
            )
        return LessonProgressOut(
            lesson_id=str(lesson_id),
            is_completed=progress.is_completed,
            progress_percentage=progress.progress_percentage,
            time_spent_minutes=progress.time_spent_minutes,
            completed_at=progress.completed_at,
        )


class LessonOut(BaseModel):
    id: str
    course_id: str
    title: str
    order_index: int
    duration_minutes: int
    has_test: bool
    progress: LessonProgressOut


class CompleteLessonIn(BaseModel):
    time_spent_minutes: int = Field(default=0, ge=0)


class CourseProgressOut(BaseModel):
    progress: int
    status: str


class CompleteLessonOut(BaseModel):
    lesson: LessonProgressOut
    course_progress: CourseProgressOut | None = None


@router.get("/{lesson_id}", response_model=LessonOut)
async def get_lesson(
    lesson_id: UUID, principal: CurrentUser, services: Services
) -> LessonOut:
    view = await services.lessons.view(lesson_id, principal.user_id)
    return LessonOut(
        id=str(view.lesson.id),
        course_id=str(view.lesson.course_id),
        title=view.lesson.title,
        order_index=view.lesson.order_index,
        duration_minutes=view.lesson.duration_minutes,
        has_test=view.has_test,
        progress=LessonProgressOut.of(view.lesson.id, view.progress),
    )


@router.post("/{lesson_id}/complete", response_model=CompleteLessonOut)
async def complete_lesson(
    lesson_id: UUID,
    body: CompleteLessonIn,
    principal: CurrentUser,
    services: Services,
) -> CompleteLessonOut:
    update = await services.lessons.record(
        lesson_id, principal.user_id, time_spent_minutes=body.time_spent_minutes
    )
    snapshot = update.course_progress
    return CompleteLessonOut(
        lesson=LessonProgressOut.of(lesson_id, update.lesson_progress),
        course_progress=(
            CourseProgressOut(progress=snapshot.progress, status=snapshot.status)
            if snapshot is not None
            else None
        ),
    )


@router.get("/{lesson_id}/progress", response_model=LessonProgressOut)
async def lesson_progress(
    lesson_id: UUID, principal: CurrentUser, services: Services
) -> LessonProgressOut:
    view = await services.lessons.view(lesson_id, principal.user_id)
    return LessonProgressOut.of(lesson_id, view.progress)
