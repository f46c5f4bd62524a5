from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import replace

import pytest

from lms.core import errors
from lms.services.certificate_renderer import InMemoryCertificateRenderer
from lms.services.certificate_service import (
    MAX_CODE_DRAWS,
    CertificateEngine,
    generate_verification_code,
)
from lms.services.notifier import Notifier
from lms.services.task_queue import CERTIFICATE_RENDER_QUEUE, NOTIFICATIONS_QUEUE
from tests.conftest import LEARNER_ID, OTHER_LEARNER_ID, World


async def _completed_course(world: World, certification="Python Basics Certificate"):
    course = await world.course(certification=certification)
    (only,) = await world.lessons(course, 1)
    await world.enroll(course)
    await world.services.lessons.record(only.id, LEARNER_ID)
    return course


def test_verification_code_format() -> None:
    code = generate_verification_code()
    assert re.fullmatch(r"CERT[A-Z0-9]{6}", code)


# ---- eligibility ----


def test_completed_course_awards_one_certificate(world: World) -> None:
    async def scenario():
        course = await _completed_course(world)
        certs = await world.repos.certifications.list_for_user(LEARNER_ID)
        again = await world.services.certificates.check_and_award(
            LEARNER_ID, course_id=course.id
        )
        return certs, again

    certs, again = asyncio.run(scenario())
    assert len(certs) == 1
    cert = certs[0]
    assert cert.certification_name == "Python Basics - Certificate of Completion"
    assert cert.status == "issued"
    assert cert.issued_at == world.clock()
    assert cert.artifact_url is None
    assert again is None


def test_no_certificate_when_course_offers_none(world: World) -> None:
    async def scenario():
        await _completed_course(world, certification=None)
        return await world.repos.certifications.list_for_user(LEARNER_ID)

    assert asyncio.run(scenario()) == []


def test_no_certificate_without_enrollment(world: World) -> None:
    async def scenario():
        course = await world.course(certification="Cert")
        return await world.services.certificates.check_and_award(
            LEARNER_ID, course_id=course.id
        )

    assert asyncio.run(scenario()) is None


def test_no_certificate_before_completion(world: World) -> None:
    async def scenario():
        course = await world.course(certification="Cert")
        first, _ = await world.lessons(course, 2)
        await world.enroll(course)
        await world.services.lessons.record(first.id, LEARNER_ID)
        return await world.services.certificates.check_and_award(
            LEARNER_ID, course_id=course.id
        )

    assert asyncio.run(scenario()) is None


def test_check_requires_exactly_one_scope(world: World) -> None:
    with pytest.raises(ValueError):
        asyncio.run(world.services.certificates.check_and_award(LEARNER_ID))


def test_concurrent_awards_issue_once(world: World) -> None:
    async def scenario():
        course = await world.course(certification="Cert")
        enrollment = await world.enroll(course)
        world.repos.progress._enrollments[enrollment.id] = replace(
            enrollment, progress=100, status="completed"
        )
        results = await asyncio.gather(
            *(
                world.services.certificates.check_and_award(
                    LEARNER_ID, course_id=course.id
                )
                for _ in range(3)
            )
        )
        return results, await world.repos.certifications.list_for_user(LEARNER_ID)

    results, certs = asyncio.run(scenario())
    assert sum(1 for r in results if r is not None) == 1
    assert len(certs) == 1


# ---- side effects ----


def test_issue_queues_render_and_notifications(world: World) -> None:
    async def scenario():
        await _completed_course(world)
        render = await world.queue.dequeue(CERTIFICATE_RENDER_QUEUE)
        first = await world.queue.dequeue(NOTIFICATIONS_QUEUE)
        second = await world.queue.dequeue(NOTIFICATIONS_QUEUE)
        (cert,) = await world.repos.certifications.list_for_user(LEARNER_ID)
        return render, first, second, cert

    render, first, second, cert = asyncio.run(scenario())
    assert render.payload == {"certificate_id": str(cert.id)}
    assert {first.payload["channel"], second.payload["channel"]} == {"in_app", "email"}
    payload = first.payload["payload"]
    assert first.payload["type"] == "certificate_issued"
    assert payload["verification_code"] == cert.verification_code
    assert payload["verification_url"].endswith(
        f"/v1/certifications/verify/{cert.verification_code}"
    )


def test_queue_failure_keeps_certificate(world: World) -> None:
    class BrokenQueue:
        async def enqueue(self, queue, payload):
            raise ConnectionError("redis down")

    async def scenario():
        broken = BrokenQueue()
        world.services.certificates._queue = broken
        world.services.certificates._notifier = Notifier(broken)
        await _completed_course(world)
        return await world.repos.certifications.list_for_user(LEARNER_ID)

    certs = asyncio.run(scenario())
    assert len(certs) == 1
    assert certs[0].artifact_url is None


def test_code_collision_draws_again(world: World) -> None:
    codes = iter(["CERTAAAAAA", "CERTAAAAAA", "CERTBBBBBB"])
    engine = CertificateEngine(
        world.repos,
        world.queue,
        Notifier(world.queue),
        clock=world.clock,
        code_factory=lambda: next(codes),
    )

    async def scenario():
        first = await world.course(title="One", certification="Cert")
        second = await world.course(title="Two", certification="Cert")
        awarded = []
        for course in (first, second):
            enrollment = await world.enroll(course)
            world.repos.progress._enrollments[enrollment.id] = replace(
                enrollment, progress=100, status="completed"
            )
            awarded.append(await engine.check_and_award(LEARNER_ID, course_id=course.id))
        return awarded

    one, two = asyncio.run(scenario())
    assert one.verification_code == "CERTAAAAAA"
    assert two.verification_code == "CERTBBBBBB"


def test_code_space_exhaustion_raises(world: World) -> None:
    engine = CertificateEngine(
        world.repos,
        world.queue,
        Notifier(world.queue),
        clock=world.clock,
        code_factory=lambda: "CERTSAME00",
    )

    async def scenario():
        for title, user in (("One", LEARNER_ID), ("Two", OTHER_LEARNER_ID)):
            course = await world.course(title=title, certification="Cert")
            enrollment = await world.enroll(course, user)
            world.repos.progress._enrollments[enrollment.id] = replace(
                enrollment, progress=100, status="completed"
            )
            await engine.check_and_award(user, course_id=course.id)

    with pytest.raises(RuntimeError, match=str(MAX_CODE_DRAWS)):
        asyncio.run(scenario())


# ---- artifacts ----


def test_render_artifact_is_idempotent(world: World) -> None:
    renderer = InMemoryCertificateRenderer("https://lms.example")

    async def scenario():
        await _completed_course(world)
        (cert,) = await world.repos.certifications.list_for_user(LEARNER_ID)
        first = await world.services.certificates.render_artifact(cert.id, renderer)
        second = await world.services.certificates.render_artifact(cert.id, renderer)
        stored = await world.repos.certifications.get(cert.id)
        return cert, first, second, stored

    cert, first, second, stored = asyncio.run(scenario())
    assert first == f"https://lms.example/certificates/{cert.verification_code}.png"
    assert second == first
    assert stored.artifact_url == first
    assert len(renderer.rendered) == 1


def test_render_unknown_certificate_returns_none(world: World) -> None:
    renderer = InMemoryCertificateRenderer("https://lms.example")
    result = asyncio.run(
        world.services.certificates.render_artifact(uuid.uuid4(), renderer)
    )
    assert result is None
    assert renderer.rendered == []


def test_repair_requeues_missing_artifacts_only(world: World) -> None:
    renderer = InMemoryCertificateRenderer("https://lms.example")

    async def scenario():
        await _completed_course(world)
        world.queue.clear()
        first = await world.services.certificates.repair_missing_artifacts()
        (cert,) = await world.repos.certifications.list_for_user(LEARNER_ID)
        await world.services.certificates.render_artifact(cert.id, renderer)
        world.queue.clear()
        second = await world.services.certificates.repair_missing_artifacts()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == 1
    assert second == 0


# ---- verification ----


def test_verify_normalises_code(world: World) -> None:
    async def scenario():
        await _completed_course(world)
        (cert,) = await world.repos.certifications.list_for_user(LEARNER_ID)
        found = await world.services.certificates.verify(
            f"  {cert.verification_code.lower()} "
        )
        return cert, found

    cert, found = asyncio.run(scenario())
    assert found.id == cert.id


def test_verify_unknown_code(world: World) -> None:
    with pytest.raises(errors.NotFoundError):
        asyncio.run(world.services.certificates.verify("CERT000000"))
