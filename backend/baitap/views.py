"""Learner-facing read models: chapter, chapter answers and subject pages."""
from __future__ import annotations
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from . import curriculum
from .errors import parse_id
from .identity import Learner
from .models import Exercise, ExerciseAttempt
from .progress import attempt_to_dict, chapter_pool, load_attempts, summarize_chapter


def _question_to_dict(question, include_answer: bool) -> Dict[str, Any]:
	data = {
		"id": question.id,
		"question": question.question,
		"options": question.options,
		"points": question.points,
		"order": question.order,
		"hint": question.hint,
	}
	if include_answer:
		data["answer"] = question.answer
	return data


def _exercise_to_dict(exercise: Exercise, include_answers: bool = False) -> Dict[str, Any]:
	return {
		"id": exercise.id,
		"title": exercise.title,
		"description": exercise.description,
		"difficulty": exercise.difficulty,
		"type": exercise.type,
		"points": exercise.points,
		"order": exercise.order,
		"sectionId": exercise.section_id,
		"sectionName": exercise.section.name,
		"questions": [_question_to_dict(q, include_answers) for q in exercise.questions],
	}


def exercise_status(attempt: ExerciseAttempt | None) -> str:
	if attempt is None:
		return "not_started"
	return "completed" if attempt.is_completed else "in_progress"


def _chapter_header(chapter) -> Dict[str, Any]:
	subject = chapter.subject
	return {
		"id": chapter.id,
		"name": chapter.name,
		"description": chapter.description,
		"order": chapter.order,
		"subject": {
			"id": subject.id,
			"name": subject.name,
			"gradeId": subject.grade_id,
			"grade": {"id": subject.grade.id, "name": subject.grade.name, "level": subject.grade.level},
		},
	}


def chapter_view(db: Session, learner: Learner, chapter_id: Any) -> Dict[str, Any]:
	"""The learner's tier of a chapter, deduplicated, with attempt state.

	Answer keys are withheld. ``currentExercise`` points at the first exercise
	not yet completed.
	"""
	grade_id = learner.require_grade()
	chapter = curriculum.get_chapter(db, parse_id(chapter_id, "chapter"), grade_id)
	pool = chapter_pool(db, learner, chapter.id)
	attempts = load_attempts(db, learner.user_id, [e.id for e in pool])

	exercises: List[Dict[str, Any]] = []
	for exercise in pool:
		attempt = attempts.get(exercise.id)
		exercises.append({
			**_exercise_to_dict(exercise),
			"attempt": attempt_to_dict(attempt),
			"isCompleted": bool(attempt and attempt.is_completed),
			"status": exercise_status(attempt),
		})

	current_index = next((i for i, e in enumerate(exercises) if not e["isCompleted"]), None)
	summary = summarize_chapter(pool, attempts)
	return {
		"chapter": _chapter_header(chapter),
		"difficulty": learner.difficulty,
		"exercises": exercises,
		"currentExercise": exercises[current_index] if current_index is not None else None,
		"currentExerciseIndex": current_index,
		"totalExercises": summary.total_exercises,
		"completedExercises": summary.completed_exercises,
		"chapterProgress": summary.to_dict(),
	}


def chapter_answers(db: Session, learner: Learner, chapter_id: Any) -> Dict[str, Any]:
	grade_id = learner.require_grade()
	chapter = curriculum.get_chapter(db, parse_id(chapter_id, "chapter"), grade_id)
	pool = chapter_pool(db, learner, chapter.id)
	attempts = load_attempts(db, learner.user_id, [e.id for e in pool])
	return {
		"chapter": _chapter_header(chapter),
		"exercises": [
			{
				**_exercise_to_dict(exercise, include_answers=True),
				"userAnswers": attempts[exercise.id].answers if exercise.id in attempts else None,
			}
			for exercise in pool
		],
	}


def subject_view(db: Session, learner: Learner, subject_id: Any) -> Dict[str, Any]:
	"""Every chapter of a subject with progress from the shared summariser."""
	grade_id = learner.require_grade()
	subject = curriculum.get_subject(db, parse_id(subject_id, "subject"), grade_id)
	chapters: List[Dict[str, Any]] = []
	for chapter in curriculum.subject_chapters(db, subject.id):
		pool = chapter_pool(db, learner, chapter.id)
		attempts = load_attempts(db, learner.user_id, [e.id for e in pool])
		sections = []
		for section in chapter.sections:
			section_exercises = [e for e in pool if e.section_id == section.id]
			sections.append({
				"id": section.id,
				"name": section.name,
				"order": section.order,
				"exercises": [
					{
						"id": e.id,
						"title": e.title,
						"difficulty": e.difficulty,
						"type": e.type,
						"points": e.points,
						"questionCount": len(e.questions),
						"attempt": attempt_to_dict(attempts.get(e.id)),
						"status": exercise_status(attempts.get(e.id)),
					}
					for e in section_exercises
				],
			})
		chapters.append({
			"id": chapter.id,
			"name": chapter.name,
			"order": chapter.order,
			"progress": summarize_chapter(pool, attempts).to_dict(),
			"sections": sections,
		})
	return {
		"subject": {
			"id": subject.id,
			"name": subject.name,
			"gradeId": subject.grade_id,
			"difficulty": learner.difficulty,
			"chapters": chapters,
		},
	}
