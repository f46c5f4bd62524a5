from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from tests.conftest import LEARNER_ID, OTHER_LEARNER_ID, World, auth


def _certified(world: World):
    async def seed():
        course = await world.course(certification="Python Basics Certificate")
        (lesson,) = await world.lessons(course, 1)
        await world.enroll(course)
        await world.services.lessons.record(lesson.id, LEARNER_ID)
        (cert,) = await world.repos.certifications.list_for_user(LEARNER_ID)
        return cert

    return asyncio.run(seed())


def test_verify_is_public(client: TestClient, api_world: World) -> None:
    cert = _certified(api_world)

    resp = client.get(f"/v1/certifications/verify/{cert.verification_code.lower()}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["valid"] is True
    assert body["verification_code"] == cert.verification_code
    assert body["issuer"] == "LMS Learning Platform"


def test_verify_unknown_code_is_404(client: TestClient) -> None:
    resp = client.get("/v1/certifications/verify/CERT000000")
    assert resp.status_code == 404
    assert resp.json()["error"]["details"]["entity"] == "certificate"


def test_mine_lists_only_own(client: TestClient, api_world: World) -> None:
    cert = _certified(api_world)

    mine = client.get("/v1/certifications/mine", headers=auth()).json()
    assert [c["id"] for c in mine] == [str(cert.id)]

    other = client.get("/v1/certifications/mine", headers=auth(OTHER_LEARNER_ID))
    assert other.json() == []


def test_mine_requires_token(client: TestClient) -> None:
    assert client.get("/v1/certifications/mine").status_code == 401
