"""In-app notification inbox for the calling user."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from lms.api.dependencies import CurrentUser, Services
from lms.models.notification import Notification

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    data: dict
    priority: str
    is_read: bool
    created_at: int
    read_at: int | None = None

    @staticmethod
    def of(n: Notification) -> NotificationOut:
        return NotificationOut(
            id=str(n.id),
            type=n.type,
            title=n.title,
            message=n.message,
            data=n.data,
            priority=n.priority,
            is_read=n.is_read,
            created_at=n.created_at,
            read_at=n.read_at,
        )


class InboxOut(BaseModel):
    notifications: list[NotificationOut]
    total: int
    limit: int
    offset: int


class UnreadCountOut(BaseModel):
    unread_count: int


class MarkedOut(BaseModel):
    updated: int


@router.get("", response_model=InboxOut)
async def list_notifications(
    principal: CurrentUser,
    services: Services,
    unread: bool = False,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> InboxOut:
    entries, total = await services.inbox.page(
        principal.user_id, unread_only=unread, limit=limit, offset=offset
    )
    return InboxOut(
        notifications=[NotificationOut.of(n) for n in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/count", response_model=UnreadCountOut)
async def unread_count(principal: CurrentUser, services: Services) -> UnreadCountOut:
    count = await services.inbox.unread_count(principal.user_id)
    return UnreadCountOut(unread_count=count)


@router.patch("/read-all", response_model=MarkedOut)
async def mark_all_read(principal: CurrentUser, services: Services) -> MarkedOut:
    return MarkedOut(updated=await services.inbox.mark_all_read(principal.user_id))


@router.patch("/{notification_id}/read", response_model=MarkedOut)
async def mark_read(
    notification_id: UUID, principal: CurrentUser, services: Services
) -> MarkedOut:
    changed = await services.inbox.mark_read(principal.user_id, notification_id)
    return MarkedOut(updated=int(changed))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID, principal: CurrentUser, services: Services
) -> Response:
    await services.inbox.delete(principal.user_id, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
