"""Instructor-led class endpoints.

Learners enroll themselves; instructors (or admins) report a learner's
progress, and reporting 100 completes the enrollment and runs the
certificate check.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from lms.api.courses import EnrollmentOut
from lms.api.dependencies import CurrentUser, Services, require_any_role
from lms.models.principal import STAFF_ROLES, Principal

router = APIRouter(prefix="/v1/classes", tags=["classes"])

_require_instructor = require_any_role(STAFF_ROLES)


class ClassProgressIn(BaseModel):
    progress: int = Field(ge=0, le=100)


class ClassProgressOut(BaseModel):
    class_id: str
    user_id: str
    progress: int
    status: str
    newly_completed: bool


@router.post(
    "/{class_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_class(
    class_id: UUID, principal: CurrentUser, services: Services
) -> EnrollmentOut:
    enrollment = await services.enrollment.enroll_in_class(
        principal.user_id, class_id
    )
    return EnrollmentOut.of(enrollment)


@router.put("/{class_id}/enrollments/{user_id}", response_model=ClassProgressOut)
async def set_class_progress(
    class_id: UUID,
    user_id: UUID,
    body: ClassProgressIn,
    _principal: Annotated[Principal, Depends(_require_instructor)],
    services: Services,
) -> ClassProgressOut:
    snapshot = await services.progress.record_class_progress(
        user_id, class_id, body.progress
    )
    return ClassProgressOut(
        class_id=str(class_id),
        user_id=str(user_id),
        progress=snapshot.progress,
        status=snapshot.status,
        newly_completed=snapshot.newly_completed,
    )
