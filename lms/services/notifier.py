"""Fire-and-forget notifications.

``send`` only enqueues; delivery (in-app inbox, email) happens in the
worker.  Enqueue failures are logged and counted, never raised: a lost
notification must not undo a passed test or an issued certificate.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.metrics import SIDE_EFFECT_FAILURES
from lms.services.task_queue import NOTIFICATIONS_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

CHANNELS = ("in_app", "email")


class Notifier:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def send(
        self,
        user_id: UUID,
        type: str,
        payload: dict,
        *,
        channel: str = "in_app",
    ) -> bool:
        """Queue a notification.  Returns False when it could not be queued."""
        if channel not in CHANNELS:
            raise ValueError(f"unknown notification channel {channel!r}")
        try:
            await self._queue.enqueue(
                NOTIFICATIONS_QUEUE,
                {
                    "user_id": str(user_id),
                    "type": type,
                    "channel": channel,
                    "payload": payload,
                },
            )
        except Exception:
            effect = "email" if channel == "email" else "notification"
            SIDE_EFFECT_FAILURES.labels(effect=effect).inc()
            logger.exception(
                "Failed to queue %s notification type=%s",
                channel,
                type,
                extra={"user_id": str(user_id)},
            )
            return False
        return True
