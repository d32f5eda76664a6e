"""Scoring of a submitted answer set against an exercise's answer keys.

Grading is a pure computation: no store access and no exceptions for
well-formed input. ``validate_answers`` is the caller-side check that turns
malformed submissions into ``ValidationError`` before anything is graded.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError


@dataclass
class QuestionResult:
	answer: str
	is_correct: bool
	points: int
	earned_points: int
	is_answered: bool
	score: Optional[float] = None
	feedback: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {
			"answer": self.answer,
			"isCorrect": self.is_correct,
			"points": self.points,
			"earnedPoints": self.earned_points,
			"isAnswered": self.is_answered,
		}
		if self.score is not None:
			data["score"] = self.score
		if self.feedback is not None:
			data["feedback"] = self.feedback
		return data

	def stored(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {"answer": self.answer, "isCorrect": self.is_correct, "isAnswered": self.is_answered}
		if self.score is not None:
			data["score"] = self.score
		if self.feedback is not None:
			data["feedback"] = self.feedback
		return data


@dataclass
class GradingResult:
	per_question: Dict[str, QuestionResult] = field(default_factory=dict)
	correct_count: int = 0
	answered_count: int = 0
	total_questions: int = 0
	total_points: int = 0
	earned_points: int = 0
	score: float = 0.0
	is_completed: bool = False

	def stored_answers(self) -> Dict[str, Dict[str, Any]]:
		return {qid: result.stored() for qid, result in self.per_question.items()}

	def to_dict(self) -> Dict[str, Any]:
		return {
			"perQuestion": {qid: r.to_dict() for qid, r in self.per_question.items()},
			"correctCount": self.correct_count,
			"answeredCount": self.answered_count,
			"totalQuestions": self.total_questions,
			"totalPoints": self.total_points,
			"earnedPoints": self.earned_points,
			"score": self.score,
			"isCompleted": self.is_completed,
		}


@dataclass
class VisionVerdict:
	score: float
	feedback: str
	is_correct: bool


def _normalize(value: Any) -> str:
	if value is None:
		return ""
	return str(value).strip().lower()


def is_answer_correct(submitted: Any, key: Any) -> bool:
	# Multiple choice compares option keys ("A" vs "a"), essays compare the
	# free text. Both are trimmed, case-insensitive exact matches.
	# TODO: essays want a fuzzier match than string equality once product
	# agrees on one.
	return _normalize(submitted) == _normalize(key)


def _finish(result: GradingResult) -> GradingResult:
	result.score = (result.earned_points / result.total_points) * 100 if result.total_points > 0 else 0.0
	# Strict bar: every question correct, not merely attempted
	result.is_completed = result.correct_count == result.total_questions
	return result


def grade(exercise: Any, submitted_answers: Mapping[str, Any]) -> GradingResult:
	result = GradingResult(total_questions=len(exercise.questions))
	for question in exercise.questions:
		qid = str(question.id)
		raw = submitted_answers.get(qid)
		answer = "" if raw is None else str(raw)
		answered = answer.strip() != ""
		correct = answered and is_answer_correct(answer, question.answer)
		points = question.points or 0
		earned = points if correct else 0
		result.per_question[qid] = QuestionResult(
			answer=answer,
			is_correct=correct,
			points=points,
			earned_points=earned,
			is_answered=answered,
		)
		result.total_points += points
		result.earned_points += earned
		if answered:
			result.answered_count += 1
		if correct:
			result.correct_count += 1
	return _finish(result)


def grade_from_verdicts(exercise: Any, verdicts: Mapping[str, VisionVerdict]) -> GradingResult:
	"""Build a result from externally produced image-essay verdicts.

	Questions without a verdict are unanswered. The overall score is the
	mean verdict score; earned points follow the per-question correctness.
	"""
	result = GradingResult(total_questions=len(exercise.questions))
	scores: List[float] = []
	for question in exercise.questions:
		qid = str(question.id)
		points = question.points or 0
		verdict = verdicts.get(qid)
		result.total_points += points
		if verdict is None:
			result.per_question[qid] = QuestionResult(answer="", is_correct=False, points=points, earned_points=0, is_answered=False)
			continue
		earned = points if verdict.is_correct else 0
		result.per_question[qid] = QuestionResult(
			answer="[image]",
			is_correct=verdict.is_correct,
			points=points,
			earned_points=earned,
			is_answered=True,
			score=verdict.score,
			feedback=verdict.feedback,
		)
		scores.append(verdict.score)
		result.answered_count += 1
		result.earned_points += earned
		if verdict.is_correct:
			result.correct_count += 1
	result.is_completed = result.correct_count == result.total_questions
	result.score = sum(scores) / len(scores) if scores else 0.0
	return result


def validate_answers(exercise: Any, answers: Any) -> Dict[str, str]:
	"""Check a submission's shape and normalise it to ``{questionId: str}``."""
	if answers is None:
		raise ValidationError("answers are required")
	if not isinstance(answers, Mapping):
		raise ValidationError("answers must be an object keyed by question id")
	known = {str(q.id) for q in exercise.questions}
	cleaned: Dict[str, str] = {}
	for raw_qid, value in answers.items():
		qid = str(raw_qid).strip()
		if not qid.isdigit():
			raise ValidationError(f"invalid question id: {raw_qid!r}")
		if qid not in known:
			raise ValidationError(f"question {qid} does not belong to exercise {exercise.id}")
		if value is not None and not isinstance(value, (str, int, float)):
			raise ValidationError(f"answer for question {qid} must be a string")
		cleaned[qid] = "" if value is None else str(value)
	return cleaned
