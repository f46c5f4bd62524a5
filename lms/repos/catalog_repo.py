from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from lms.models.assessment import Question, Test
from lms.models.course import Course, CourseClass, Lesson


class CatalogRepo(Protocol):
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def add_course(self, course: Course) -> None: ...
    async def increment_student_count(self, course_id: UUID) -> None: ...

    async def get_class(self, class_id: UUID) -> CourseClass | None: ...
    async def add_class(self, course_class: CourseClass) -> None: ...
    async def reserve_class_slot(self, class_id: UUID) -> bool: ...
    async def release_class_slot(self, class_id: UUID) -> None: ...

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def add_lesson(self, lesson: Lesson) -> None: ...
    async def get_lesson_at(self, course_id: UUID, order_index: int) -> Lesson | None: ...
    async def list_lessons(
        self, course_id: UUID, *, published_only: bool = True
    ) -> list[Lesson]: ...

    async def get_test(self, test_id: UUID) -> Test | None: ...
    async def add_test(self, test: Test) -> None: ...
    async def get_lesson_test(self, lesson_id: UUID) -> Test | None: ...
    async def list_course_tests(self, course_id: UUID) -> list[Test]: ...

    async def get_question(self, question_id: UUID) -> Question | None: ...
    async def add_question(self, question: Question) -> None: ...
    async def list_questions(self, test_id: UUID) -> list[Question]: ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._classes: dict[UUID, CourseClass] = {}
        self._lessons: dict[UUID, Lesson] = {}
        self._tests: dict[UUID, Test] = {}
        self._questions: dict[UUID, Question] = {}

    def clear(self) -> None:
        self._courses.clear()
        self._classes.clear()
        self._lessons.clear()
        self._tests.clear()
        self._questions.clear()

    # --- courses ---

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def add_course(self, course: Course) -> None:
        self._courses[course.id] = course

    async def increment_student_count(self, course_id: UUID) -> None:
        course = self._courses.get(course_id)
        if course is not None:
            self._courses[course_id] = replace(
                course, student_count=course.student_count + 1
            )

    # --- classes ---

    async def get_class(self, class_id: UUID) -> CourseClass | None:
        return self._classes.get(class_id)

    async def add_class(self, course_class: CourseClass) -> None:
        self._classes[course_class.id] = course_class

    async def reserve_class_slot(self, class_id: UUID) -> bool:
        c = self._classes.get(class_id)
        if c is None:
            return False
        if c.available_slots is None:
            return True
        if c.available_slots <= 0:
            return False
        self._classes[class_id] = replace(c, available_slots=c.available_slots - 1)
        return True

    async def release_class_slot(self, class_id: UUID) -> None:
        c = self._classes.get(class_id)
        if c is None or c.available_slots is None:
            return
        self._classes[class_id] = replace(c, available_slots=c.available_slots + 1)

    # --- lessons ---

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def add_lesson(self, lesson: Lesson) -> None:
        for existing in self._lessons.values():
            if (
                existing.course_id == lesson.course_id
                and existing.order_index == lesson.order_index
                and existing.id != lesson.id
            ):
                raise ValueError("order_index already used in this course")
        self._lessons[lesson.id] = lesson

    async def get_lesson_at(self, course_id: UUID, order_index: int) -> Lesson | None:
        for lesson in self._lessons.values():
            if lesson.course_id == course_id and lesson.order_index == order_index:
                return lesson
        return None

    async def list_lessons(
        self, course_id: UUID, *, published_only: bool = True
    ) -> list[Lesson]:
        lessons = [
            lesson
            for lesson in self._lessons.values()
            if lesson.course_id == course_id
            and (lesson.is_published or not published_only)
        ]
        return sorted(lessons, key=lambda lesson: lesson.order_index)

    # --- tests ---

    async def get_test(self, test_id: UUID) -> Test | None:
        return self._tests.get(test_id)

    async def add_test(self, test: Test) -> None:
        self._tests[test.id] = test

    async def get_lesson_test(self, lesson_id: UUID) -> Test | None:
        for test in self._tests.values():
            if test.lesson_id == lesson_id:
                return test
        return None

    async def list_course_tests(self, course_id: UUID) -> list[Test]:
        """Published tests owned by the course or attached to one of its published lessons."""
        lesson_ids = {
            lesson.id
            for lesson in self._lessons.values()
            if lesson.course_id == course_id and lesson.is_published
        }
        return [
            test
            for test in self._tests.values()
            if test.is_published
            and (test.course_id == course_id or test.lesson_id in lesson_ids)
        ]

    # --- questions ---

    async def get_question(self, question_id: UUID) -> Question | None:
        return self._questions.get(question_id)

    async def add_question(self, question: Question) -> None:
        self._questions[question.id] = question

    async def list_questions(self, test_id: UUID) -> list[Question]:
        questions = [q for q in self._questions.values() if q.test_id == test_id]
        return sorted(questions, key=lambda q: q.order_index)
