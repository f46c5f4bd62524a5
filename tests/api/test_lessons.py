from __future__ import annotations

import asyncio
import uuid

from fastapi.testclient import TestClient

from tests.conftest import World, auth


def _enrolled_course(client: TestClient, world: World, count: int = 2):
    async def seed():
        course = await world.course()
        return course, await world.lessons(course, count)

    course, lessons = asyncio.run(seed())
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth())
    return course, lessons


def test_locked_lesson_returns_error_envelope(
    client: TestClient, api_world: World
) -> None:
    _, lessons = _enrolled_course(client, api_world)

    resp = client.get(f"/v1/lessons/{lessons[1].id}", headers=auth())

    assert resp.status_code == 403
    body = resp.json()
    assert body["path"] == f"/v1/lessons/{lessons[1].id}"
    assert body["error"]["code"] == "lesson_locked"
    assert "Lesson 1" in body["error"]["message"]
    assert body["error"]["details"]["prerequisite_lesson_id"] == str(lessons[0].id)


def test_view_first_lesson(client: TestClient, api_world: World) -> None:
    course, lessons = _enrolled_course(client, api_world)

    resp = client.get(f"/v1/lessons/{lessons[0].id}", headers=auth())

    assert resp.status_code == 200
    body = resp.json()
    assert body["course_id"] == str(course.id)
    assert body["has_test"] is False
    assert body["progress"]["is_completed"] is False


def test_complete_lesson_unlocks_next(client: TestClient, api_world: World) -> None:
    _, lessons = _enrolled_course(client, api_world)

    resp = client.post(
        f"/v1/lessons/{lessons[0].id}/complete",
        headers=auth(),
        json={"time_spent_minutes": 9},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["lesson"]["is_completed"] is True
    assert body["lesson"]["time_spent_minutes"] == 9
    assert body["course_progress"] == {"progress": 50, "status": "in_progress"}

    assert client.get(f"/v1/lessons/{lessons[1].id}", headers=auth()).status_code == 200


def test_negative_time_is_validation_error(
    client: TestClient, api_world: World
) -> None:
    _, lessons = _enrolled_course(client, api_world)

    resp = client.post(
        f"/v1/lessons/{lessons[0].id}/complete",
        headers=auth(),
        json={"time_spent_minutes": -5},
    )

    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["errors"][0]["field"] == "time_spent_minutes"


def test_unknown_lesson_is_404(client: TestClient) -> None:
    resp = client.get(f"/v1/lessons/{uuid.uuid4()}", headers=auth())
    assert resp.status_code == 404
