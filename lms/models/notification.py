from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

PRIORITIES = ("low", "normal", "high")


@dataclass(frozen=True, slots=True)
class Notification:
    """One entry in a learner's in-app inbox."""

    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    created_at: int
    data: dict = field(default_factory=dict)
    priority: str = "normal"
    is_read: bool = False
    read_at: int | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        created_at: int,
        data: dict | None = None,
        priority: str = "normal",
    ) -> Notification:
        if priority not in PRIORITIES:
            raise ValueError(f"unknown notification priority {priority!r}")
        return Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            created_at=created_at,
            data=dict(data or {}),
            priority=priority,
        )
