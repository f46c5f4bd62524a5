"""In-app notification inbox.

The worker turns each queued ``in_app`` notification into a stored row via
``deliver``; learners read and tidy their inbox through the API.  Another
user's notification is reported as missing, never as forbidden.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.errors import NotFoundError
from lms.models.notification import Notification
from lms.repos.registry import LearningRepos
from lms.services.clock import Clock, utc_now

logger = logging.getLogger(__name__)

# type -> (title, message template, priority); templates read the payload
TEMPLATES: dict[str, tuple[str, str, str]] = {
    "certificate_issued": (
        "Certificate Awarded!",
        'You have earned "{certification_name}". '
        "Verification code: {verification_code}.",
        "high",
    ),
}


def render(type: str, payload: dict) -> tuple[str, str, str]:
    """Title, message and priority for a notification type.

    Unknown types, or payloads missing a template field, fall back to a
    generic entry so a delivery is never lost to formatting.
    """
    title, template, priority = TEMPLATES.get(
        type, (type.replace("_", " ").capitalize(), "", "normal")
    )
    try:
        message = template.format(**payload)
    except KeyError:
        message = ""
    return title, message or title, priority


class NotificationInbox:
    def __init__(self, repos: LearningRepos, *, clock: Clock = utc_now) -> None:
        self._repos = repos
        self._clock = clock

    async def deliver(self, user_id: UUID, type: str, payload: dict) -> Notification:
        title, message, priority = render(type, payload)
        notification = Notification.new(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            created_at=self._clock(),
            data=payload,
            priority=priority,
        )
        await self._repos.notifications.add(notification)
        logger.info(
            "Stored in-app notification type=%s",
            type,
            extra={"user_id": str(user_id)},
        )
        return notification

    async def page(
        self,
        user_id: UUID,
        *,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Notification], int]:
        """One page of the inbox, newest first, plus the total matching count."""
        entries = await self._repos.notifications.list_for_user(
            user_id, unread_only=unread_only, limit=limit, offset=offset
        )
        total = await self._repos.notifications.count_for_user(
            user_id, unread_only=unread_only
        )
        return entries, total

    async def unread_count(self, user_id: UUID) -> int:
        return await self._repos.notifications.count_for_user(user_id, unread_only=True)

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool:
        """Returns False when the notification was already read."""
        await self._owned(user_id, notification_id)
        return await self._repos.notifications.mark_read(
            notification_id, self._clock()
        )

    async def mark_all_read(self, user_id: UUID) -> int:
        return await self._repos.notifications.mark_all_read(user_id, self._clock())

    async def delete(self, user_id: UUID, notification_id: UUID) -> None:
        await self._owned(user_id, notification_id)
        await self._repos.notifications.delete(notification_id)

    async def _owned(self, user_id: UUID, notification_id: UUID) -> Notification:
        notification = await self._repos.notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("notification", notification_id)
        return notification
