from __future__ import annotations

import uuid

import pytest

from lms.core.errors import InvalidAnswerError
from lms.models.assessment import AttemptAnswer, Question
from lms.services.scoring import (
    display_answer,
    grade,
    round_half_up,
    score_attempt,
    validate_answer,
)

TEST_ID = uuid.uuid4()


def _mc(points: int = 1) -> Question:
    return Question.new(
        test_id=TEST_ID,
        question="Pick b",
        question_type="multiple_choice",
        options=("a", "b", "c"),
        correct_answer=1,
        points=points,
    )


def _tf() -> Question:
    return Question.new(
        test_id=TEST_ID, question="Sky is blue", question_type="true_false", correct_answer=1
    )


def _short() -> Question:
    return Question.new(
        test_id=TEST_ID,
        question="Capital of France?",
        question_type="short_answer",
        correct_answer_text="Paris",
    )


def _answer(question: Question, correct: bool) -> AttemptAnswer:
    return AttemptAnswer(
        attempt_id=uuid.uuid4(),
        question_id=question.id,
        is_correct=correct,
        points_earned=question.points if correct else 0,
        answered_at=0,
    )


@pytest.mark.parametrize(
    ("value", "expected"), [(62.5, 63), (62.4, 62), (0.5, 1), (99.5, 100), (0, 0)]
)
def test_round_half_up(value, expected) -> None:
    assert round_half_up(value) == expected


def test_grade_multiple_choice() -> None:
    q = _mc()
    assert grade(q, 1, None) is True
    assert grade(q, 0, None) is False


def test_grade_true_false() -> None:
    q = _tf()
    assert grade(q, 1, None) is True
    assert grade(q, 0, None) is False


def test_grade_short_answer_is_exact_after_normalising() -> None:
    q = _short()
    assert grade(q, None, " PARIS ") is True
    assert grade(q, None, "Paris, France") is False


def test_validate_rejects_missing_selection() -> None:
    with pytest.raises(InvalidAnswerError):
        validate_answer(_mc(), None, None)


def test_validate_rejects_true_false_out_of_range() -> None:
    with pytest.raises(InvalidAnswerError):
        validate_answer(_tf(), 2, None)


def test_validate_accepts_in_range() -> None:
    validate_answer(_mc(), 2, None)
    validate_answer(_tf(), 0, None)
    validate_answer(_short(), None, "x")


def test_score_weights_by_points() -> None:
    heavy, light = _mc(points=3), _mc(points=1)
    score, correct = score_attempt([heavy, light], [_answer(heavy, True)])
    assert score == 75
    assert correct == 1


def test_score_with_no_points_possible_is_zero() -> None:
    assert score_attempt([], []) == (0, 0)


def test_display_answer() -> None:
    assert display_answer(_mc(), 1) == "b"
    assert display_answer(_tf(), 0) == "False"
    assert display_answer(_mc(), None) is None
    assert display_answer(_mc(), 7) is None
