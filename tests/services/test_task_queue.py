"""Task outbox and the unit-of-work scope that flushes it."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager

import pytest
from prometheus_client import REGISTRY

from lms.db import engine
from lms.models.certification import Certification
from lms.repos.registry import memory_repos
from lms.services import learning
from lms.services.task_queue import (
    CERTIFICATE_RENDER_QUEUE,
    NOTIFICATIONS_QUEUE,
    InMemoryTaskQueue,
    Task,
    TaskOutbox,
)
from tests.conftest import LEARNER_ID, T0


def _failures(effect: str) -> float:
    value = REGISTRY.get_sample_value("side_effect_failures_total", {"effect": effect})
    return value if value is not None else 0.0


class _FlakyQueue(InMemoryTaskQueue):
    """Refuses to push render tasks."""

    async def push(self, task: Task) -> None:
        if task.queue == CERTIFICATE_RENDER_QUEUE:
            raise ConnectionError("redis down")
        await super().push(task)


def _unrendered() -> Certification:
    cert = Certification.new(
        user_id=LEARNER_ID,
        certification_name="Python Basics - Certificate of Completion",
        issuer="LMS Learning Platform",
        issued_at=T0,
        verification_code="CERTQUEUE1",
        course_id=uuid.uuid4(),
    )
    asyncio.run(memory_repos.certifications.add(cert))
    return cert


# ---- outbox ----


def test_outbox_holds_tasks_until_flush() -> None:
    target = InMemoryTaskQueue()
    outbox = TaskOutbox(target)

    async def scenario():
        first = await outbox.enqueue(CERTIFICATE_RENDER_QUEUE, {"certificate_id": "a"})
        await outbox.enqueue(NOTIFICATIONS_QUEUE, {"type": "certificate_issued"})
        held = await target.queue_length(CERTIFICATE_RENDER_QUEUE)
        sent = await outbox.flush()
        delivered = await target.dequeue(CERTIFICATE_RENDER_QUEUE)
        return first, held, sent, delivered

    first, held, sent, delivered = asyncio.run(scenario())
    assert held == 0
    assert sent == 2
    assert delivered == first
    assert outbox.pending == ()


def test_outbox_discard_drops_everything() -> None:
    target = InMemoryTaskQueue()
    outbox = TaskOutbox(target)

    async def scenario():
        await outbox.enqueue(NOTIFICATIONS_QUEUE, {"type": "certificate_issued"})
        dropped = outbox.discard()
        sent = await outbox.flush()
        return dropped, sent, await target.queue_length(NOTIFICATIONS_QUEUE)

    assert asyncio.run(scenario()) == (1, 0, 0)


def test_flush_failure_is_counted_and_rest_still_go() -> None:
    target = _FlakyQueue()
    outbox = TaskOutbox(target)
    before = _failures("certificate_render")

    async def scenario():
        await outbox.enqueue(CERTIFICATE_RENDER_QUEUE, {"certificate_id": "a"})
        await outbox.enqueue(NOTIFICATIONS_QUEUE, {"type": "certificate_issued"})
        sent = await outbox.flush()
        return sent, await target.queue_length(NOTIFICATIONS_QUEUE)

    assert asyncio.run(scenario()) == (1, 1)
    assert _failures("certificate_render") == before + 1


def test_failure_effect_labels() -> None:
    render = Task.new(CERTIFICATE_RENDER_QUEUE, {"certificate_id": "a"})
    in_app = Task.new(NOTIFICATIONS_QUEUE, {"channel": "in_app"})
    email = Task.new(NOTIFICATIONS_QUEUE, {"channel": "email"})
    assert render.failure_effect == "certificate_render"
    assert in_app.failure_effect == "notification"
    assert email.failure_effect == "email"


# ---- learning_scope, in-memory ----


def test_scope_releases_tasks_only_after_the_work_finishes() -> None:
    _unrendered()
    target = InMemoryTaskQueue()

    async def scenario():
        async with learning.learning_scope(queue=target) as services:
            queued = await services.certificates.repair_missing_artifacts()
            inside = await target.queue_length(CERTIFICATE_RENDER_QUEUE)
        after = await target.queue_length(CERTIFICATE_RENDER_QUEUE)
        return queued, inside, after

    assert asyncio.run(scenario()) == (1, 0, 1)


# ---- learning_scope, transactional ----


@pytest.fixture
def transactional(monkeypatch) -> list[str]:
    """Route learning_scope through a fake session that records its outcome."""
    outcomes: list[str] = []

    @asynccontextmanager
    async def fake_session_scope():
        try:
            yield object()
        except BaseException:
            outcomes.append("rollback")
            raise
        outcomes.append("commit")

    monkeypatch.setattr(engine, "async_session_factory", object())
    monkeypatch.setattr(engine, "session_scope", fake_session_scope)
    monkeypatch.setattr(learning, "pg_repos", lambda session: memory_repos)
    return outcomes


def test_committed_scope_flushes(transactional: list[str]) -> None:
    _unrendered()
    target = InMemoryTaskQueue()

    async def scenario():
        async with learning.learning_scope(queue=target) as services:
            await services.certificates.repair_missing_artifacts()
        return await target.queue_length(CERTIFICATE_RENDER_QUEUE)

    assert asyncio.run(scenario()) == 1
    assert transactional == ["commit"]


def test_rolled_back_scope_drops_tasks(transactional: list[str]) -> None:
    _unrendered()
    target = InMemoryTaskQueue()

    async def scenario():
        async with learning.learning_scope(queue=target) as services:
            await services.certificates.repair_missing_artifacts()
            raise RuntimeError("handler failed after queuing")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert asyncio.run(target.queue_length(CERTIFICATE_RENDER_QUEUE)) == 0
    assert transactional == ["rollback"]
