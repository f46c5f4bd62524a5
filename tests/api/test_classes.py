from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from tests.conftest import INSTRUCTOR_ID, LEARNER_ID, OTHER_LEARNER_ID, World, auth


def test_enroll_until_full(client: TestClient, api_world: World) -> None:
    c = asyncio.run(api_world.course_class(max_students=1))

    first = client.post(f"/v1/classes/{c.id}/enroll", headers=auth())
    second = client.post(f"/v1/classes/{c.id}/enroll", headers=auth(OTHER_LEARNER_ID))

    assert first.status_code == 201
    assert first.json()["class_id"] == str(c.id)
    assert second.status_code == 403
    assert second.json()["error"]["code"] == "class_full"


def test_learner_cannot_report_progress(client: TestClient, api_world: World) -> None:
    c = asyncio.run(api_world.course_class())
    client.post(f"/v1/classes/{c.id}/enroll", headers=auth())

    resp = client.put(
        f"/v1/classes/{c.id}/enrollments/{LEARNER_ID}",
        headers=auth(),
        json={"progress": 100},
    )

    assert resp.status_code == 403


def test_instructor_completes_class(client: TestClient, api_world: World) -> None:
    c = asyncio.run(api_world.course_class())
    client.post(f"/v1/classes/{c.id}/enroll", headers=auth())
    instructor = auth(INSTRUCTOR_ID, roles=["instructor"])

    resp = client.put(
        f"/v1/classes/{c.id}/enrollments/{LEARNER_ID}",
        headers=instructor,
        json={"progress": 100},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "class_id": str(c.id),
        "user_id": str(LEARNER_ID),
        "progress": 100,
        "status": "completed",
        "newly_completed": True,
    }
    certs = client.get("/v1/certifications/mine", headers=auth()).json()
    assert certs[0]["class_id"] == str(c.id)


def test_progress_out_of_range_is_422(client: TestClient, api_world: World) -> None:
    c = asyncio.run(api_world.course_class())
    resp = client.put(
        f"/v1/classes/{c.id}/enrollments/{LEARNER_ID}",
        headers=auth(INSTRUCTOR_ID, roles=["instructor"]),
        json={"progress": 120},
    )
    assert resp.status_code == 422


def test_progress_for_unenrolled_learner_is_403(
    client: TestClient, api_world: World
) -> None:
    c = asyncio.run(api_world.course_class())
    resp = client.put(
        f"/v1/classes/{c.id}/enrollments/{LEARNER_ID}",
        headers=auth(INSTRUCTOR_ID, roles=["admin"]),
        json={"progress": 10},
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "not_enrolled"
