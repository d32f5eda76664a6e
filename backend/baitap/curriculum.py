"""Read-only queries over the Grade > Subject > Chapter > Section > Exercise tree."""
from __future__ import annotations
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from .errors import NotFoundError, store_errors
from .models import Chapter, Exercise, Section, Subject


def get_exercise(db: Session, exercise_id: int, grade_id: Optional[int] = None) -> Exercise:
	with store_errors(db, "loading exercise"):
		exercise = (
			db.query(Exercise)
			.options(
				selectinload(Exercise.questions),
				joinedload(Exercise.section).joinedload(Section.chapter).joinedload(Chapter.subject),
			)
			.filter(Exercise.id == exercise_id)
			.first()
		)
	if exercise is None:
		raise NotFoundError(f"exercise {exercise_id} not found")
	if grade_id is not None and exercise.section.chapter.subject.grade_id != grade_id:
		raise NotFoundError(f"exercise {exercise_id} is not part of your grade")
	return exercise


def get_chapter(db: Session, chapter_id: int, grade_id: int) -> Chapter:
	with store_errors(db, "loading chapter"):
		chapter = (
			db.query(Chapter)
			.options(joinedload(Chapter.subject).joinedload(Subject.grade))
			.filter(Chapter.id == chapter_id)
			.first()
		)
	if chapter is None or chapter.subject.grade_id != grade_id:
		raise NotFoundError(f"chapter {chapter_id} not found for your grade")
	return chapter


def get_subject(db: Session, subject_id: int, grade_id: int) -> Subject:
	with store_errors(db, "loading subject"):
		subject = (
			db.query(Subject)
			.options(joinedload(Subject.grade))
			.filter(Subject.id == subject_id, Subject.grade_id == grade_id)
			.first()
		)
	if subject is None:
		raise NotFoundError(f"subject {subject_id} not found for your grade")
	return subject


def chapter_exercises(db: Session, chapter_id: int, difficulty: Optional[str] = None) -> List[Exercise]:
	"""Exercises of a chapter by section order then exercise order, not deduplicated."""
	with store_errors(db, "listing chapter exercises"):
		query = (
			db.query(Exercise)
			.join(Section, Exercise.section_id == Section.id)
			.options(selectinload(Exercise.questions), joinedload(Exercise.section))
			.filter(Section.chapter_id == chapter_id)
		)
		if difficulty is not None:
			query = query.filter(Exercise.difficulty == difficulty)
		return query.order_by(Section.order, Section.id, Exercise.order, Exercise.id).all()


def subject_chapters(db: Session, subject_id: int) -> List[Chapter]:
	with store_errors(db, "listing subject chapters"):
		return (
			db.query(Chapter)
			.options(selectinload(Chapter.sections))
			.filter(Chapter.subject_id == subject_id)
			.order_by(Chapter.order, Chapter.id)
			.all()
		)
