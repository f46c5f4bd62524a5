"""Answer validation, grading and score arithmetic.

Grading rules:
  multiple_choice  selected option index must equal correct_answer
  true_false       selected index in {0, 1} ("False", "True")
  short_answer     trimmed, case-insensitive exact match; no partial credit

Scores are ``round_half_up(earned / possible * 100)`` where ``possible`` is
the sum of every question's points, so an unanswered question counts as
zero earned out of its full weight.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from lms.core.errors import InvalidAnswerError
from lms.models.assessment import TRUE_FALSE_OPTIONS, AttemptAnswer, Question


def round_half_up(value: float) -> int:
    # built-in round() is banker's rounding; 62.5 must become 63
    return int(math.floor(value + 0.5))


def validate_answer(
    question: Question, selected_answer: int | None, answer_text: str | None
) -> None:
    """Raise InvalidAnswerError when the payload does not fit the question type."""
    qtype = question.question_type
    if qtype == "multiple_choice":
        if selected_answer is None:
            raise InvalidAnswerError(qtype, "selected_answer is required")
        if not 0 <= selected_answer < len(question.options):
            raise InvalidAnswerError(
                qtype,
                f"selected_answer must be between 0 and {len(question.options) - 1}",
            )
    elif qtype == "true_false":
        if selected_answer not in (0, 1):
            raise InvalidAnswerError(qtype, "selected_answer must be 0 or 1")
    elif qtype == "short_answer":
        if answer_text is None or not answer_text.strip():
            raise InvalidAnswerError(qtype, "answer_text must not be empty")
    else:
        raise InvalidAnswerError(qtype, f"unsupported question type {qtype!r}")


def grade(
    question: Question, selected_answer: int | None, answer_text: str | None
) -> bool:
    if question.question_type == "short_answer":
        expected = (question.correct_answer_text or "").strip().lower()
        return bool(expected) and (answer_text or "").strip().lower() == expected
    return selected_answer is not None and selected_answer == question.correct_answer


def points_for(question: Question, is_correct: bool) -> int:
    return question.points if is_correct else 0


def score_attempt(
    questions: Iterable[Question], answers: Iterable[AttemptAnswer]
) -> tuple[int, int]:
    """Return (score 0-100, correct answer count)."""
    possible = sum(q.points for q in questions)
    answer_list = list(answers)
    earned = sum(a.points_earned for a in answer_list)
    correct = sum(1 for a in answer_list if a.is_correct)
    if possible <= 0:
        return 0, correct
    return round_half_up(earned / possible * 100), correct


def display_answer(question: Question, selected_answer: int | None) -> str | None:
    """Human label for an index answer, used in attempt review."""
    if selected_answer is None:
        return None
    options = (
        TRUE_FALSE_OPTIONS
        if question.question_type == "true_false"
        else question.options
    )
    if 0 <= selected_answer < len(options):
        return options[selected_answer]
    return None
