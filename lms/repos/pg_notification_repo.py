"""PostgreSQL implementation of NotificationRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import NotificationRow
from lms.models.notification import Notification


class PgNotificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, notification: Notification) -> None:
        self._session.add(
            NotificationRow(
                id=notification.id,
                user_id=notification.user_id,
                type=notification.type,
                title=notification.title,
                message=notification.message,
                data=notification.data,
                priority=notification.priority,
                is_read=notification.is_read,
                created_at=notification.created_at,
                read_at=notification.read_at,
            )
        )
        await self._session.flush()

    async def get(self, notification_id: UUID) -> Notification | None:
        row = await self._session.get(
            NotificationRow, notification_id, populate_existing=True
        )
        return _row_to_notification(row) if row is not None else None

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Notification]:
        stmt = select(NotificationRow).where(NotificationRow.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationRow.is_read.is_(False))
        stmt = (
            stmt.order_by(NotificationRow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_notification(r) for r in rows]

    async def count_for_user(self, user_id: UUID, *, unread_only: bool = False) -> int:
        stmt = select(func.count()).where(NotificationRow.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationRow.is_read.is_(False))
        return (await self._session.execute(stmt)).scalar_one()

    async def mark_read(self, notification_id: UUID, read_at: int) -> bool:
        stmt = (
            update(NotificationRow)
            .where(
                NotificationRow.id == notification_id,
                NotificationRow.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_all_read(self, user_id: UUID, read_at: int) -> int:
        stmt = (
            update(NotificationRow)
            .where(
                NotificationRow.user_id == user_id,
                NotificationRow.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def delete(self, notification_id: UUID) -> bool:
        stmt = delete(NotificationRow).where(NotificationRow.id == notification_id)
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        created_at=row.created_at,
        data=dict(row.data or {}),
        priority=row.priority,
        is_read=row.is_read,
        read_at=row.read_at,
    )
