"""Attempt persistence and the section/chapter rollups built on it.

An ``ExerciseAttempt`` is upserted on its natural key ``(user, exercise)``.
``SectionProgress.completed_exercises`` is the only incremented counter and
is bumped once per exercise, the first time its attempt becomes completed.
``ChapterProgress`` is always recomputed from the deduplicated exercise set
and the stored attempts, never adjusted in place.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import curriculum
from .dedup import deduplicate_exercises
from .errors import AggregationInconsistency, NotFoundError, PersistenceError, ValidationError, parse_id, store_errors
from .grading import GradingResult, grade, validate_answers
from .identity import Learner
from .models import Chapter, ChapterProgress, Exercise, ExerciseAttempt, SectionProgress

logger = logging.getLogger(__name__)


@dataclass
class ChapterSummary:
	completed_exercises: int = 0
	total_exercises: int = 0
	correct_questions: int = 0
	total_questions: int = 0

	@property
	def status(self) -> str:
		if self.total_exercises > 0 and self.completed_exercises == self.total_exercises:
			return "completed"
		if self.completed_exercises > 0:
			return "in_progress"
		return "not_started"

	@property
	def progress(self) -> int:
		if self.total_exercises == 0:
			return 0
		return round(self.completed_exercises / self.total_exercises * 100)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"status": self.status,
			"progress": self.progress,
			"completedExercises": self.completed_exercises,
			"totalExercises": self.total_exercises,
			"correctQuestions": self.correct_questions,
			"totalQuestions": self.total_questions,
		}


def summarize_chapter(exercises: Iterable[Exercise], attempts: Mapping[int, ExerciseAttempt]) -> ChapterSummary:
	"""Roll a deduplicated exercise list and its attempts into chapter counters.

	Draft attempts are ignored; only questions that belong to the exercise
	are counted as correct.
	"""
	summary = ChapterSummary()
	for exercise in exercises:
		question_ids = {str(q.id) for q in exercise.questions}
		summary.total_exercises += 1
		summary.total_questions += len(question_ids)
		attempt = attempts.get(exercise.id)
		if attempt is None or attempt.status == "draft":
			continue
		if attempt.is_completed:
			summary.completed_exercises += 1
		for qid, stored in (attempt.answers or {}).items():
			if qid in question_ids and isinstance(stored, dict) and stored.get("isCorrect") is True:
				summary.correct_questions += 1
	return summary


def load_attempts(db: Session, user_id: int, exercise_ids: Iterable[int]) -> Dict[int, ExerciseAttempt]:
	ids = list(exercise_ids)
	if not ids:
		return {}
	with store_errors(db, "loading attempts"):
		rows = (
			db.query(ExerciseAttempt)
			.filter(ExerciseAttempt.user_id == user_id, ExerciseAttempt.exercise_id.in_(ids))
			.all()
		)
	attempts: Dict[int, ExerciseAttempt] = {}
	for row in rows:
		if row.exercise_id in attempts:
			logger.error("user %s has more than one attempt for exercise %s", user_id, row.exercise_id)
			raise AggregationInconsistency(f"duplicate attempts for exercise {row.exercise_id}")
		attempts[row.exercise_id] = row
	return attempts


def attempt_to_dict(attempt: Optional[ExerciseAttempt]) -> Optional[Dict[str, Any]]:
	if attempt is None:
		return None
	return {
		"id": attempt.id,
		"exerciseId": attempt.exercise_id,
		"answers": attempt.answers,
		"score": attempt.score,
		"totalPoints": attempt.total_points,
		"isCompleted": attempt.is_completed,
		"status": attempt.status,
		"completedAt": attempt.completed_at.isoformat() if attempt.completed_at else None,
	}


def chapter_pool(db: Session, learner: Learner, chapter_id: int) -> List[Exercise]:
	"""Deduplicated exercises of a chapter for the learner's difficulty tier."""
	return deduplicate_exercises(curriculum.chapter_exercises(db, chapter_id, learner.difficulty))


# ---- writes ----

def _apply_result(attempt: ExerciseAttempt, now: datetime, result: GradingResult) -> None:
	was_completed = attempt.is_completed and attempt.status != "draft"
	attempt.answers = result.stored_answers()
	attempt.score = result.score
	attempt.total_points = result.total_points
	attempt.is_completed = result.is_completed
	attempt.status = "completed" if result.is_completed else "submitted"
	if not result.is_completed:
		attempt.completed_at = None
	elif not was_completed or attempt.completed_at is None:
		attempt.completed_at = now


def _apply_draft(attempt: ExerciseAttempt, now: datetime, exercise: Exercise, answers: Mapping[str, str]) -> None:
	attempt.answers = {qid: value for qid, value in answers.items() if value.strip()}
	attempt.score = None
	attempt.total_points = sum(q.points or 0 for q in exercise.questions)
	attempt.is_completed = False
	attempt.status = "draft"
	attempt.completed_at = None


def _bump_section(db: Session, user_id: int, exercise: Exercise, pool: List[Exercise], now: datetime) -> None:
	# Increment in SQL: concurrent completions of sibling exercises each add one
	section_total = sum(1 for e in pool if e.section_id == exercise.section_id)
	bumped = (
		db.query(SectionProgress)
		.filter(SectionProgress.user_id == user_id, SectionProgress.section_id == exercise.section_id)
		.update(
			{
				SectionProgress.completed_exercises: SectionProgress.completed_exercises + 1,
				SectionProgress.total_exercises: section_total,
				SectionProgress.status: case(
					(SectionProgress.completed_exercises + 1 >= section_total, "completed"),
					else_="in_progress",
				),
				SectionProgress.last_accessed_at: now,
			},
			synchronize_session=False,
		)
	)
	if not bumped:
		db.add(SectionProgress(
			user_id=user_id,
			section_id=exercise.section_id,
			completed_exercises=1,
			total_exercises=section_total,
			status="completed" if section_total <= 1 else "in_progress",
			last_accessed_at=now,
		))
		db.flush()


def _claim_first_completion(db: Session, attempt: ExerciseAttempt) -> bool:
	"""Flip ``ever_completed`` in the store; only one writer can win it."""
	claimed = (
		db.query(ExerciseAttempt)
		.filter(ExerciseAttempt.id == attempt.id, ExerciseAttempt.ever_completed.is_(False))
		.update({ExerciseAttempt.ever_completed: True}, synchronize_session=False)
	)
	return claimed == 1


@dataclass
class SavedAttempt:
	attempt: ExerciseAttempt
	newly_completed: bool


def _write_attempt(db: Session, user_id: int, exercise: Exercise, pool: List[Exercise], apply) -> SavedAttempt:
	now = datetime.utcnow()
	attempt = (
		db.query(ExerciseAttempt)
		.filter(ExerciseAttempt.user_id == user_id, ExerciseAttempt.exercise_id == exercise.id)
		.first()
	)
	if attempt is None:
		attempt = ExerciseAttempt(user_id=user_id, exercise_id=exercise.id, answers={}, ever_completed=False)
		db.add(attempt)
	apply(attempt, now)
	db.flush()
	newly_completed = bool(attempt.is_completed and not attempt.ever_completed) and _claim_first_completion(db, attempt)
	if newly_completed:
		_bump_section(db, user_id, exercise, pool, now)
	db.commit()
	return SavedAttempt(attempt=attempt, newly_completed=newly_completed)


def save_attempt(db: Session, user_id: int, exercise: Exercise, pool: List[Exercise], apply) -> SavedAttempt:
	"""Upsert one attempt and, on its first completion, the section counter.

	Both rows are committed together. Writers of the same ``(user, exercise)``
	key are serialised by the store: a concurrent insert surfaces as an
	``IntegrityError`` and the write is retried once against the row that
	won, and the first-completion flag is claimed with a conditional update
	so the section counter moves once.
	"""
	try:
		return _write_attempt(db, user_id, exercise, pool, apply)
	except IntegrityError:
		db.rollback()
		logger.info("attempt for user %s exercise %s created concurrently, retrying as update", user_id, exercise.id)
	except SQLAlchemyError as exc:
		db.rollback()
		raise PersistenceError(f"saving attempt for exercise {exercise.id} failed") from exc
	try:
		return _write_attempt(db, user_id, exercise, pool, apply)
	except SQLAlchemyError as exc:
		db.rollback()
		raise PersistenceError(f"saving attempt for exercise {exercise.id} failed") from exc


def recompute_chapter_progress(db: Session, learner: Learner, chapter: Chapter) -> ChapterProgress:
	pool = chapter_pool(db, learner, chapter.id)
	attempts = load_attempts(db, learner.user_id, [e.id for e in pool])
	summary = summarize_chapter(pool, attempts)
	now = datetime.utcnow()
	with store_errors(db, f"updating progress for chapter {chapter.id}"):
		row = (
			db.query(ChapterProgress)
			.filter(ChapterProgress.user_id == learner.user_id, ChapterProgress.chapter_id == chapter.id)
			.first()
		)
		if row is None:
			row = ChapterProgress(
				user_id=learner.user_id,
				chapter_id=chapter.id,
				subject_id=chapter.subject_id,
				grade_id=chapter.subject.grade_id,
			)
			db.add(row)
		previous_status = row.status
		row.status = summary.status
		row.progress = summary.progress
		row.completed_exercises = summary.completed_exercises
		row.total_exercises = summary.total_exercises
		row.correct_questions = summary.correct_questions
		row.total_questions = summary.total_questions
		row.last_accessed_at = now
		if summary.status != "completed":
			row.completed_at = None
		elif previous_status != "completed" or row.completed_at is None:
			row.completed_at = now
		db.commit()
	return row


def chapter_progress_to_dict(row: Optional[ChapterProgress]) -> Optional[Dict[str, Any]]:
	if row is None:
		return None
	return {
		"chapterId": row.chapter_id,
		"status": row.status,
		"progress": row.progress,
		"completedExercises": row.completed_exercises,
		"totalExercises": row.total_exercises,
		"correctQuestions": row.correct_questions,
		"totalQuestions": row.total_questions,
		"lastAccessedAt": row.last_accessed_at.isoformat() if row.last_accessed_at else None,
		"completedAt": row.completed_at.isoformat() if row.completed_at else None,
	}


# ---- submissions ----

def resolve_submittable(db: Session, learner: Learner, exercise_id: int) -> Tuple[Exercise, List[Exercise]]:
	"""Load an exercise and check it is in the learner's deduplicated pool."""
	grade_id = learner.require_grade()
	exercise = curriculum.get_exercise(db, exercise_id, grade_id)
	if exercise.difficulty != learner.difficulty:
		raise NotFoundError(f"exercise {exercise_id} is not in your {learner.difficulty} exercise set")
	pool = chapter_pool(db, learner, exercise.section.chapter_id)
	canonical = next((e for e in pool if (e.title, e.difficulty) == (exercise.title, exercise.difficulty)), None)
	if canonical is not None and canonical.id != exercise.id:
		raise ValidationError(f"exercise {exercise_id} duplicates exercise {canonical.id}; submit that one")
	return exercise, pool


def record_graded_exercise(db: Session, learner: Learner, exercise: Exercise, pool: List[Exercise], result: GradingResult) -> Dict[str, Any]:
	saved = save_attempt(db, learner.user_id, exercise, pool, partial(_apply_result, result=result))
	chapter_row = recompute_chapter_progress(db, learner, exercise.section.chapter)
	return {
		"attempt": attempt_to_dict(saved.attempt),
		**result.to_dict(),
		"newlyCompleted": saved.newly_completed,
		"chapterProgress": chapter_progress_to_dict(chapter_row),
	}


def submit_exercise(db: Session, learner: Learner, exercise_id: Any, answers: Any) -> Dict[str, Any]:
	exercise, pool = resolve_submittable(db, learner, parse_id(exercise_id, "exercise"))
	cleaned = validate_answers(exercise, answers)
	result = grade(exercise, cleaned)
	logger.info(
		"user %s submitted exercise %s: %s/%s correct, score %.1f",
		learner.user_id, exercise.id, result.correct_count, result.total_questions, result.score,
	)
	return record_graded_exercise(db, learner, exercise, pool, result)


def _parse_batch(pool: List[Exercise], per_exercise_answers: Any) -> List[Tuple[Exercise, Dict[str, str]]]:
	if per_exercise_answers is None:
		raise ValidationError("exercises are required")
	if not isinstance(per_exercise_answers, Mapping):
		raise ValidationError("exercises must be an object keyed by exercise id")
	by_id = {e.id: e for e in pool}
	parsed: List[Tuple[Exercise, Dict[str, str]]] = []
	for raw_id, answers in per_exercise_answers.items():
		exercise_id = parse_id(raw_id, "exercise")
		exercise = by_id.get(exercise_id)
		if exercise is None:
			raise NotFoundError(f"exercise {exercise_id} is not part of this chapter's exercise set")
		parsed.append((exercise, validate_answers(exercise, answers)))
	return parsed


def submit_chapter(db: Session, learner: Learner, chapter_id: Any, per_exercise_answers: Any, *, draft: bool = False) -> Dict[str, Any]:
	"""Submit several exercises of one chapter and recompute the chapter once.

	The whole payload is validated before anything is written. Exercises are
	then persisted independently: a store failure on one is reported in
	``failed`` and the rest carry on. Chapter progress is recomputed after the
	last write, from whatever attempts are committed; if that fails the
	report still comes back, with ``chapterProgress`` set to ``None``.
	"""
	grade_id = learner.require_grade()
	chapter = curriculum.get_chapter(db, parse_id(chapter_id, "chapter"), grade_id)
	pool = chapter_pool(db, learner, chapter.id)
	batch = _parse_batch(pool, per_exercise_answers)

	graded: List[Tuple[Exercise, Dict[str, str], Optional[GradingResult]]] = [
		(exercise, answers, None if draft else grade(exercise, answers)) for exercise, answers in batch
	]

	results: List[Dict[str, Any]] = []
	succeeded: List[int] = []
	failed: List[Dict[str, Any]] = []
	for exercise, answers, result in graded:
		if result is None:
			apply = partial(_apply_draft, exercise=exercise, answers=answers)
		else:
			apply = partial(_apply_result, result=result)
		try:
			saved = save_attempt(db, learner.user_id, exercise, pool, apply)
		except PersistenceError as exc:
			logger.warning("chapter %s: exercise %s not saved: %s", chapter.id, exercise.id, exc)
			failed.append({"exerciseId": exercise.id, "error": exc.message})
			continue
		succeeded.append(exercise.id)
		results.append({
			"exerciseId": exercise.id,
			"status": saved.attempt.status,
			"correctCount": result.correct_count if result else None,
			"answeredCount": result.answered_count if result else sum(1 for a in answers.values() if a.strip()),
			"totalQuestions": len(exercise.questions),
			"score": result.score if result else None,
			"isCompleted": result.is_completed if result else False,
			"newlyCompleted": saved.newly_completed,
		})

	# Attempts above are committed whether or not the rollup succeeds
	try:
		chapter_row: Optional[ChapterProgress] = recompute_chapter_progress(db, learner, chapter)
	except PersistenceError as exc:
		logger.error("chapter %s: progress not recomputed after batch: %s", chapter.id, exc)
		chapter_row = None
	chapter_status = chapter_row.status if chapter_row is not None else None
	logger.info(
		"user %s submitted chapter %s (%s): %s saved, %s failed, status %s",
		learner.user_id, chapter.id, "draft" if draft else "final", len(succeeded), len(failed), chapter_status,
	)
	return {
		"chapterId": chapter.id,
		"submittedCount": len(results),
		"completedCount": sum(1 for r in results if r["isCompleted"]),
		"results": results,
		"succeeded": succeeded,
		"failed": failed,
		"chapterStatus": chapter_status,
		"chapterProgress": chapter_progress_to_dict(chapter_row),
	}
