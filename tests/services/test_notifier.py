from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from lms.services.notifier import Notifier
from lms.services.task_queue import NOTIFICATIONS_QUEUE, InMemoryTaskQueue
from tests.conftest import LEARNER_ID


def _failures(effect: str) -> float:
    value = REGISTRY.get_sample_value("side_effect_failures_total", {"effect": effect})
    return value if value is not None else 0.0


class _BrokenQueue:
    async def enqueue(self, queue, payload):
        raise ConnectionError("redis down")


def test_send_enqueues_notification() -> None:
    queue = InMemoryTaskQueue()

    async def scenario():
        ok = await Notifier(queue).send(
            LEARNER_ID, "certificate_issued", {"code": "CERT123456"}, channel="email"
        )
        return ok, await queue.dequeue(NOTIFICATIONS_QUEUE)

    ok, task = asyncio.run(scenario())
    assert ok is True
    assert task.payload == {
        "user_id": str(LEARNER_ID),
        "type": "certificate_issued",
        "channel": "email",
        "payload": {"code": "CERT123456"},
    }


def test_enqueue_failure_is_counted_not_raised(caplog) -> None:
    before = _failures("email")
    ok = asyncio.run(Notifier(_BrokenQueue()).send(LEARNER_ID, "t", {}, channel="email"))
    after = _failures("email")
    assert ok is False
    assert after == before + 1
    assert "Failed to queue email notification" in caplog.text


def test_unknown_channel_rejected() -> None:
    with pytest.raises(ValueError):
        asyncio.run(
            Notifier(InMemoryTaskQueue()).send(LEARNER_ID, "t", {}, channel="sms")
        )
