"""Background worker for queued side effects.

RUN:  python -m lms.worker

Same image as the API, different command:
  api:    uvicorn lms.main:app --host 0.0.0.0 --port 8000
  worker: python -m lms.worker

The loop polls every registered queue round-robin and hands each task to
its handler.  A failing handler is logged and counted; the loop moves on.
A handler that raises ``RetryTask`` gets its task back on the queue with a
growing delay, up to ``MAX_TASK_RETRIES`` times.  Certificates whose render
never succeeds keep ``artifact_url`` NULL and are re-queued by the repair
path.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import replace
from typing import Any
from uuid import UUID

from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.core.metrics import SIDE_EFFECT_FAILURES
from lms.services.certificate_renderer import CertificateRenderer, certificate_renderer
from lms.services.learning import learning_scope
from lms.services.task_queue import (
    CERTIFICATE_RENDER_QUEUE,
    NOTIFICATIONS_QUEUE,
    Task,
    TaskQueue,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("lms.worker")

HANDLERS: dict[str, TaskHandler] = {}

MAX_TASK_RETRIES = 3
RETRY_DELAY_SECONDS = 5


class RetryTask(Exception):
    """The task cannot run yet; put it back on its queue."""


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(CERTIFICATE_RENDER_QUEUE)
async def handle_certificate_render(
    payload: dict, renderer: CertificateRenderer | None = None
) -> None:
    certificate_id = UUID(payload["certificate_id"])
    async with learning_scope() as services:
        url = await services.certificates.render_artifact(
            certificate_id, renderer or certificate_renderer
        )
    if url is None:
        raise RetryTask(f"certificate {certificate_id} is not stored yet")
    logger.info(
        "Rendered certificate artifact",
        extra={"certificate_id": str(certificate_id)},
    )


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    user_id = UUID(payload["user_id"])
    channel = payload.get("channel", "in_app")
    if channel == "in_app":
        async with learning_scope() as services:
            await services.inbox.deliver(
                user_id, payload["type"], payload.get("payload", {})
            )
        return
    # Email transport lives outside this service; record the hand-off.
    logger.info(
        "Handed off %s notification type=%s",
        channel,
        payload.get("type"),
        extra={"user_id": str(user_id)},
    )


async def _retry_later(queue: TaskQueue, task: Task, reason: str) -> None:
    if task.retries >= MAX_TASK_RETRIES:
        SIDE_EFFECT_FAILURES.labels(effect=task.failure_effect).inc()
        logger.error(
            "Task %s on [%s] gave up after %d retries: %s",
            task.id,
            task.queue,
            task.retries,
            reason,
        )
        return
    retries = task.retries + 1
    await queue.push(
        replace(
            task,
            retries=retries,
            not_before=int(time.time()) + RETRY_DELAY_SECONDS * retries,
        )
    )
    logger.warning(
        "Task %s on [%s] re-queued (retry %d): %s",
        task.id,
        task.queue,
        retries,
        reason,
    )


async def run_once(queue: TaskQueue = task_queue, *, timeout: int = 1) -> int:
    """One pass over every queue; returns the number of tasks handled."""
    handled = 0
    for queue_name, handler in HANDLERS.items():
        task = await queue.dequeue(queue_name, timeout=timeout)
        if task is None:
            continue
        if task.not_before > time.time():
            await queue.push(task)
            continue
        handled += 1
        try:
            await handler(task.payload)
            logger.info(
                "Task %s on [%s] completed, %ds after enqueue",
                task.id,
                queue_name,
                max(0, int(time.time()) - task.enqueued_at),
            )
        except RetryTask as exc:
            await _retry_later(queue, task, str(exc))
        except Exception:
            SIDE_EFFECT_FAILURES.labels(effect=task.failure_effect).inc()
            logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return handled


async def run_worker() -> None:
    logger.info("Worker started, listening on queues: %s", list(HANDLERS))
    while True:
        if not await run_once():
            # Nothing ready; in-memory queues return immediately.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
