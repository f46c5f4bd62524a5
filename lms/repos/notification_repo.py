from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.models.notification import Notification


class NotificationRepo(Protocol):
    async def add(self, notification: Notification) -> None: ...
    async def get(self, notification_id: UUID) -> Notification | None: ...
    async def list_for_user(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Notification]: ...
    async def count_for_user(self, user_id: UUID, *, unread_only: bool = False) -> int: ...
    async def mark_read(self, notification_id: UUID, read_at: int) -> bool: ...
    async def mark_all_read(self, user_id: UUID, read_at: int) -> int: ...
    async def delete(self, notification_id: UUID) -> bool: ...


class InMemoryNotificationRepo:
    """Newest first; ``mark_read`` only flips unread rows."""

    def __init__(self) -> None:
        self._by_id: dict[UUID, Notification] = {}

    def clear(self) -> None:
        self._by_id.clear()

    async def add(self, notification: Notification) -> None:
        self._by_id[notification.id] = notification

    async def get(self, notification_id: UUID) -> Notification | None:
        return self._by_id.get(notification_id)

    def _for_user(self, user_id: UUID, unread_only: bool) -> list[Notification]:
        return [
            n
            for n in self._by_id.values()
            if n.user_id == user_id and not (unread_only and n.is_read)
        ]

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Notification]:
        inbox = sorted(
            self._for_user(user_id, unread_only),
            key=lambda n: n.created_at,
            reverse=True,
        )
        return inbox[offset : offset + limit]

    async def count_for_user(self, user_id: UUID, *, unread_only: bool = False) -> int:
        return len(self._for_user(user_id, unread_only))

    async def mark_read(self, notification_id: UUID, read_at: int) -> bool:
        n = self._by_id.get(notification_id)
        if n is None or n.is_read:
            return False
        self._by_id[notification_id] = replace(n, is_read=True, read_at=read_at)
        return True

    async def mark_all_read(self, user_id: UUID, read_at: int) -> int:
        unread = self._for_user(user_id, unread_only=True)
        for n in unread:
            self._by_id[n.id] = replace(n, is_read=True, read_at=read_at)
        return len(unread)

    async def delete(self, notification_id: UUID) -> bool:
        return self._by_id.pop(notification_id, None) is not None
