from types import SimpleNamespace

import pytest

from baitap.errors import ValidationError
from baitap.grading import VisionVerdict, grade, grade_from_verdicts, validate_answers


def _exercise(type="multiple_choice", keys=("A", "B", "C"), points=(2, 3, 5)):
	questions = [
		SimpleNamespace(id=i + 1, answer=key, points=pts)
		for i, (key, pts) in enumerate(zip(keys, points))
	]
	return SimpleNamespace(id=7, type=type, questions=questions)


def test_weighted_score_with_one_wrong_answer():
	result = grade(_exercise(), {"1": "A", "2": "D", "3": "C"})
	assert result.earned_points == 7
	assert result.total_points == 10
	assert result.score == pytest.approx(70.0)
	assert result.correct_count == 2
	assert result.is_completed is False


def test_all_correct_completes():
	result = grade(_exercise(), {"1": "a", "2": " b ", "3": "C"})
	assert result.score == pytest.approx(100.0)
	assert result.is_completed is True


def test_one_wrong_low_weight_question_blocks_completion():
	exercise = _exercise(keys=("A", "B"), points=(99, 1))
	result = grade(exercise, {"1": "A", "2": "C"})
	assert result.score == pytest.approx(99.0)
	assert result.is_completed is False


def test_missing_answers_are_unanswered_and_wrong():
	result = grade(_exercise(), {"1": "A"})
	assert result.answered_count == 1
	assert result.per_question["2"].answer == ""
	assert result.per_question["2"].is_answered is False
	assert result.per_question["2"].is_correct is False


def test_essay_text_is_compared_case_insensitively():
	exercise = _exercise(type="essay", keys=("Ten",), points=(1,))
	assert grade(exercise, {"1": "  ten "}).is_completed is True
	assert grade(exercise, {"1": "ten apples"}).is_completed is False


def test_zero_points_gives_zero_score():
	exercise = _exercise(keys=("A",), points=(0,))
	result = grade(exercise, {"1": "A"})
	assert result.score == 0
	assert result.is_completed is True


def test_question_order_does_not_matter():
	exercise = _exercise()
	reordered = SimpleNamespace(id=7, type="multiple_choice", questions=list(reversed(exercise.questions)))
	answers = {"1": "A", "2": "B", "3": "x"}
	assert grade(exercise, answers).score == grade(reordered, answers).score


def test_stored_answers_cover_every_question():
	stored = grade(_exercise(), {"2": "B"}).stored_answers()
	assert set(stored) == {"1", "2", "3"}
	assert stored["2"] == {"answer": "B", "isCorrect": True, "isAnswered": True}


def test_verdicts_are_injected():
	exercise = _exercise(type="essay", keys=("x", "y"), points=(1, 3))
	result = grade_from_verdicts(exercise, {
		"1": VisionVerdict(score=90, feedback="fine", is_correct=True),
		"2": VisionVerdict(score=40, feedback="missing step", is_correct=False),
	})
	assert result.score == pytest.approx(65.0)
	assert result.earned_points == 1
	assert result.is_completed is False
	assert result.per_question["2"].feedback == "missing step"


def test_question_without_verdict_is_unanswered():
	exercise = _exercise(type="essay", keys=("x", "y"), points=(1, 1))
	result = grade_from_verdicts(exercise, {"1": VisionVerdict(score=100, feedback="", is_correct=True)})
	assert result.per_question["2"].is_answered is False
	assert result.is_completed is False


class TestValidateAnswers:
	def test_rejects_missing_map(self):
		with pytest.raises(ValidationError):
			validate_answers(_exercise(), None)

	def test_rejects_non_mapping(self):
		with pytest.raises(ValidationError):
			validate_answers(_exercise(), ["A", "B"])

	def test_rejects_non_numeric_question_id(self):
		with pytest.raises(ValidationError):
			validate_answers(_exercise(), {"first": "A"})

	def test_rejects_foreign_question_id(self):
		with pytest.raises(ValidationError):
			validate_answers(_exercise(), {"42": "A"})

	def test_rejects_nested_values(self):
		with pytest.raises(ValidationError):
			validate_answers(_exercise(), {"1": {"answer": "A"}})

	def test_normalises_values_to_strings(self):
		assert validate_answers(_exercise(), {"1": None, "2": 3}) == {"1": "", "2": "3"}
