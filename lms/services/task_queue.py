"""Background task queue on Redis lists.

Side effects of the progression engine (certificate rendering, in-app and
email notifications) never run inside the request.  The API enqueues a
task and returns; ``python -m lms.worker`` dequeues and executes it.

  Producer (API):    LPUSH onto ``lms:tasks:<queue>``
  Consumer (worker): BRPOP from the same list

Head-in, tail-out gives FIFO order.  Delivery is at-most-once: a worker
crash mid-task loses that task.  Certificates survive this because the
row is committed before rendering is requested, and the repair path
re-enqueues any certificate still missing its artifact.

Services do not push to the queue while their transaction is open.  They
enqueue into the unit of work's ``TaskOutbox``, which hands the tasks to
the real queue once the transaction has committed and drops them when it
rolls back.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Protocol, runtime_checkable

from lms.core.metrics import SIDE_EFFECT_FAILURES
from lms.db.redis import redis_pool

logger = logging.getLogger(__name__)

CERTIFICATE_RENDER_QUEUE = "certificate_render"
NOTIFICATIONS_QUEUE = "notifications"
QUEUES = (CERTIFICATE_RENDER_QUEUE, NOTIFICATIONS_QUEUE)


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    queue: str
    payload: dict
    enqueued_at: int = field(default_factory=lambda: int(time.time()))
    retries: int = 0
    # epoch seconds; workers put the task back until then
    not_before: int = 0

    @staticmethod
    def new(queue: str, payload: dict) -> Task:
        if queue not in QUEUES:
            raise ValueError(f"unknown task queue: {queue!r}")
        return Task(id=str(uuid.uuid4()), queue=queue, payload=payload)

    @property
    def failure_effect(self) -> str:
        """Label for side_effect_failures_total when this task is lost."""
        if self.queue == CERTIFICATE_RENDER_QUEUE:
            return "certificate_render"
        return "email" if self.payload.get("channel") == "email" else "notification"

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(raw: str | bytes) -> Task:
        return Task(**json.loads(raw))


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def push(self, task: Task) -> None: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-process queue for dev and tests; nothing survives a restart."""

    def __init__(self) -> None:
        self._queues: dict[str, deque[Task]] = {}

    def clear(self) -> None:
        self._queues.clear()

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        await self.push(task)
        return task

    async def push(self, task: Task) -> None:
        self._queues.setdefault(task.queue, deque()).append(task)

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        pending = self._queues.get(queue)
        return pending.popleft() if pending else None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, ()))


class RedisTaskQueue:
    """LPUSH/BRPOP over one list per queue, shared by every API instance."""

    def __init__(self, redis_client, *, prefix: str = "lms:tasks:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, queue: str) -> str:
        return f"{self._prefix}{queue}"

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        await self.push(task)
        return task

    async def push(self, task: Task) -> None:
        await self._redis.lpush(self._key(task.queue), task.to_json())

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        popped = await self._redis.brpop(self._key(queue), timeout=timeout)
        if popped is None:
            return None
        return Task.from_json(popped[1])

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._key(queue))


class TaskOutbox:
    """Tasks raised inside one unit of work, held back until it commits."""

    def __init__(self, target: TaskQueue) -> None:
        self._target = target
        self._pending: list[Task] = []

    @property
    def pending(self) -> tuple[Task, ...]:
        return tuple(self._pending)

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        self._pending.append(task)
        return task

    async def push(self, task: Task) -> None:
        self._pending.append(task)

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        return await self._target.dequeue(queue, timeout)

    async def queue_length(self, queue: str) -> int:
        return await self._target.queue_length(queue)

    def discard(self) -> int:
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    async def flush(self) -> int:
        """Push every held task in order; returns how many reached the queue.

        A task that cannot be pushed is logged and counted; the rest still go.
        """
        pending, self._pending = self._pending, []
        sent = 0
        for task in pending:
            try:
                await self._target.push(task)
            except Exception:
                SIDE_EFFECT_FAILURES.labels(effect=task.failure_effect).inc()
                logger.exception("Failed to queue task %s on [%s]", task.id, task.queue)
                continue
            sent += 1
        return sent


task_queue: TaskQueue = (
    RedisTaskQueue(redis_pool) if redis_pool is not None else InMemoryTaskQueue()
)
