"""Domain errors raised by the progression engine.

Every error carries the HTTP status the API boundary should answer with,
a stable machine-readable ``error_code``, a human message and optional
structured ``details``.  The services raise these directly; the handler
registered in lms/api/error_handlers.py turns them into JSON responses.

Families (the second column is the HTTP status):

  NotFoundError          404  entity missing, or not visible to the caller
  InvalidStateError      409  operation against the wrong lifecycle state
  LimitExceededError     403  max attempts / max students reached
  InputValidationError   422  malformed answer payload for a question type
  ConflictError          409  duplicate answer, certificate or enrollment
  AccessDeniedError      403  learner is not enrolled
  LessonLockedError      403  prerequisite lesson not yet completed
"""

from __future__ import annotations

from typing import Any


class LearningError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    error_code = "learning_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- 404 ---


class NotFoundError(LearningError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(
            f"{entity} not found",
            {"entity": entity, "id": str(entity_id)},
        )
        self.entity = entity


# --- 409 lifecycle ---


class InvalidStateError(LearningError):
    status_code = 409
    error_code = "invalid_state"


class TestNotPublishedError(InvalidStateError):
    error_code = "test_not_published"

    def __init__(self, test_id: object) -> None:
        super().__init__("Test is not published", {"test_id": str(test_id)})


class NoQuestionsError(InvalidStateError):
    error_code = "no_questions"

    def __init__(self, test_id: object) -> None:
        super().__init__("Test has no questions", {"test_id": str(test_id)})


class WrongStatusError(InvalidStateError):
    error_code = "wrong_status"

    def __init__(self, attempt_id: object, status: str, expected: str) -> None:
        super().__init__(
            f"Attempt is {status}, expected {expected}",
            {"attempt_id": str(attempt_id), "status": status, "expected": expected},
        )


# --- 403 limits ---


class LimitExceededError(LearningError):
    status_code = 403
    error_code = "limit_exceeded"


class MaxAttemptsReachedError(LimitExceededError):
    error_code = "max_attempts_reached"

    def __init__(
        self,
        *,
        max_attempts: int,
        current_attempts: int,
        last_score: int | None,
        passed: bool,
        last_attempt_id: object | None,
    ) -> None:
        super().__init__(
            "Maximum attempts reached for this test",
            {
                "max_attempts": max_attempts,
                "current_attempts": current_attempts,
                "last_score": last_score,
                "passed": passed,
                "can_proceed": last_attempt_id is not None,
                "last_attempt_id": str(last_attempt_id) if last_attempt_id else None,
            },
        )


class ClassFullError(LimitExceededError):
    error_code = "class_full"

    def __init__(self, class_id: object) -> None:
        super().__init__("Class has no available slots", {"class_id": str(class_id)})


# --- 422 input ---


class InputValidationError(LearningError):
    status_code = 422
    error_code = "validation_error"


class InvalidAnswerError(InputValidationError):
    error_code = "invalid_answer"

    def __init__(self, question_type: str, reason: str) -> None:
        super().__init__(reason, {"question_type": question_type})


# --- 409 conflicts ---


class ConflictError(LearningError):
    status_code = 409
    error_code = "conflict"


class AttemptInProgressError(ConflictError):
    error_code = "attempt_in_progress"

    def __init__(self, test_id: object, attempt_id: object | None = None) -> None:
        details: dict[str, Any] = {"test_id": str(test_id)}
        if attempt_id is not None:
            details["attempt_id"] = str(attempt_id)
        super().__init__("An attempt for this test is already in progress", details)


class DuplicateAnswerError(ConflictError):
    error_code = "duplicate_answer"

    def __init__(self, attempt_id: object, question_id: object) -> None:
        super().__init__(
            "Question already answered in this attempt",
            {"attempt_id": str(attempt_id), "question_id": str(question_id)},
        )


class AlreadyEnrolledError(ConflictError):
    error_code = "already_enrolled"

    def __init__(self, scope: str, scope_id: object) -> None:
        super().__init__(
            f"Already enrolled in this {scope}", {f"{scope}_id": str(scope_id)}
        )


class DuplicateCertificateError(ConflictError):
    error_code = "duplicate_certificate"

    def __init__(self, user_id: object, scope: str, scope_id: object) -> None:
        super().__init__(
            "Certificate already issued",
            {"user_id": str(user_id), f"{scope}_id": str(scope_id)},
        )


class VerificationCodeTakenError(ConflictError):
    error_code = "verification_code_taken"

    def __init__(self, code: str) -> None:
        super().__init__("Verification code already in use", {"code": code})


# --- 403 access ---


class AccessDeniedError(LearningError):
    status_code = 403
    error_code = "access_denied"


class NotEnrolledError(AccessDeniedError):
    error_code = "not_enrolled"

    def __init__(self, scope: str, scope_id: object) -> None:
        super().__init__(
            f"Not enrolled in this {scope}", {f"{scope}_id": str(scope_id)}
        )


class LessonLockedError(LearningError):
    status_code = 403
    error_code = "lesson_locked"

    def __init__(
        self,
        lesson_id: object,
        prerequisite_id: object | None,
        prerequisite_title: str | None,
    ) -> None:
        if prerequisite_title is not None:
            message = f'Complete the test for "{prerequisite_title}" to unlock this lesson'
        else:
            message = "This lesson is locked"
        super().__init__(
            message,
            {
                "lesson_id": str(lesson_id),
                "prerequisite_lesson_id": (
                    str(prerequisite_id) if prerequisite_id is not None else None
                ),
                "prerequisite_title": prerequisite_title,
            },
        )
