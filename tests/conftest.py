from __future__ import annotations

import sys
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lms.api.ratelimit import rate_limiter
from lms.main import app
from lms.models.assessment import Question, Test
from lms.models.course import Course, CourseClass, Lesson
from lms.repos.registry import (
    LearningRepos,
    in_memory_repos,
    memory_repos,
    reset_memory_repos,
)
from lms.services import token_service
from lms.services.certificate_renderer import certificate_renderer
from lms.services.learning import LearningServices, build_learning_services
from lms.services.task_queue import InMemoryTaskQueue, TaskQueue, task_queue

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

LEARNER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
OTHER_LEARNER_ID = uuid.UUID("00000000-0000-4000-8000-000000000002")
INSTRUCTOR_ID = uuid.UUID("00000000-0000-4000-8000-0000000000aa")
ADMIN_ID = uuid.UUID("00000000-0000-4000-8000-0000000000ff")

T0 = 1_760_000_000


@pytest.fixture(autouse=True)
def reset_learning_state() -> None:
    """Clear the shared in-memory repositories between tests."""
    reset_memory_repos()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(rate_limiter, "clear"):
        rate_limiter.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if isinstance(task_queue, InMemoryTaskQueue):
        task_queue.clear()


@pytest.fixture(autouse=True)
def reset_renderer() -> None:
    if hasattr(certificate_renderer, "rendered"):
        certificate_renderer.rendered.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: uuid.UUID | str = LEARNER_ID,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id), roles=roles)


def auth(user_id: uuid.UUID | str = LEARNER_ID, roles: list[str] | None = None) -> dict:
    return {"Authorization": f"Bearer {mint_token(user_id, roles)}"}


@pytest.fixture
def token() -> str:
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    return mint_token(ADMIN_ID, roles=["admin"])


# ---------------------------------------------------------------------------
# Service-level helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, *, minutes: int = 0, seconds: int = 0) -> None:
        self.now += minutes * 60 + seconds


class World:
    """Fresh repositories, queue and clock wired into one service bundle."""

    def __init__(
        self,
        repos: LearningRepos | None = None,
        queue: TaskQueue | None = None,
    ) -> None:
        self.repos: LearningRepos = repos or in_memory_repos()
        self.queue = queue or InMemoryTaskQueue()
        self.clock = FakeClock()
        self.services: LearningServices = build_learning_services(
            self.repos, queue=self.queue, clock=self.clock
        )

    async def course(
        self, *, title: str = "Python Basics", certification: str | None = None
    ) -> Course:
        course = Course.new(title=title, certification=certification)
        await self.repos.catalog.add_course(course)
        return course

    async def course_class(
        self,
        *,
        title: str = "Evening Cohort",
        certification: str | None = "Attendance",
        max_students: int | None = None,
    ) -> CourseClass:
        c = CourseClass.new(
            title=title, certification=certification, max_students=max_students
        )
        await self.repos.catalog.add_class(c)
        return c

    async def lessons(self, course: Course, count: int) -> list[Lesson]:
        lessons = []
        for i in range(1, count + 1):
            lesson = Lesson.new(course_id=course.id, title=f"Lesson {i}", order_index=i)
            await self.repos.catalog.add_lesson(lesson)
            lessons.append(lesson)
        return lessons

    async def test_with_questions(
        self,
        *,
        course_id: uuid.UUID | None = None,
        lesson_id: uuid.UUID | None = None,
        questions: int = 2,
        passing_score: int = 70,
        max_attempts: int = 3,
        duration_minutes: int | None = None,
        is_published: bool = True,
    ) -> tuple[Test, list[Question]]:
        test = Test.new(
            title="Checkpoint",
            course_id=course_id,
            lesson_id=lesson_id,
            passing_score=passing_score,
            max_attempts=max_attempts,
            duration_minutes=duration_minutes,
            is_published=is_published,
        )
        await self.repos.catalog.add_test(test)
        added = []
        for i in range(1, questions + 1):
            q = Question.new(
                test_id=test.id,
                question=f"Question {i}?",
                question_type="multiple_choice",
                options=("a", "b", "c"),
                correct_answer=1,
                order_index=i,
            )
            await self.repos.catalog.add_question(q)
            added.append(q)
        return test, added

    async def enroll(self, course: Course, user_id: uuid.UUID = LEARNER_ID):
        return await self.services.enrollment.enroll_in_course(user_id, course.id)


@pytest.fixture
def world() -> World:
    return World()


@pytest.fixture
def api_world() -> World:
    """A World over the repositories and queue the app itself uses."""
    return World(memory_repos, task_queue)
