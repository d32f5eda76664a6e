"""Distinct-question and AI-question counts over day and week windows.

Windows are closed-open ``[start, end)`` intervals cut at local midnight in
``settings.report_timezone`` and compared against naive UTC timestamps, the
way every ``created_at`` column is stored.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session, joinedload, selectinload

from .dedup import deduplicate_exercises
from .errors import ValidationError, store_errors
from .models import Chapter, Conversation, Exercise, ExerciseAttempt, Message, Section
from .settings import settings

logger = logging.getLogger(__name__)


def _zone() -> ZoneInfo:
	return ZoneInfo(settings.report_timezone)


def _local_midnight_utc(day: date) -> datetime:
	local = datetime.combine(day, time.min, tzinfo=_zone())
	return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_today() -> date:
	return datetime.now(_zone()).date()


def day_window(day: date) -> Tuple[datetime, datetime]:
	return _local_midnight_utc(day), _local_midnight_utc(day + timedelta(days=1))


def week_window(day: date) -> Tuple[datetime, datetime]:
	"""Monday 00:00 to the following Monday 00:00 of the week holding ``day``."""
	monday = day - timedelta(days=day.weekday())
	return _local_midnight_utc(monday), _local_midnight_utc(monday + timedelta(days=7))


def parse_day(raw: Optional[str]) -> Optional[date]:
	if raw is None or raw == "":
		return None
	try:
		return date.fromisoformat(raw)
	except ValueError:
		raise ValidationError(f"invalid date: {raw!r}; expected YYYY-MM-DD")


@dataclass
class ChapterActivity:
	chapter_id: int
	chapter_name: str
	question_ids: Set[int] = field(default_factory=set)
	exercises: List[Dict[str, Any]] = field(default_factory=list)

	@property
	def distinct_question_count(self) -> int:
		return len(self.question_ids)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"chapterId": self.chapter_id,
			"chapterName": self.chapter_name,
			"distinctQuestionCount": self.distinct_question_count,
			"exercises": self.exercises,
		}


@dataclass
class SubjectActivity:
	subject_id: int
	subject_name: str
	chapters: Dict[int, ChapterActivity] = field(default_factory=dict)

	@property
	def distinct_question_count(self) -> int:
		return sum(c.distinct_question_count for c in self.chapters.values())

	def to_dict(self) -> Dict[str, Any]:
		return {
			"subjectId": self.subject_id,
			"subjectName": self.subject_name,
			"distinctQuestionCount": self.distinct_question_count,
			"perChapter": [c.to_dict() for c in sorted(self.chapters.values(), key=lambda c: (c.chapter_name, c.chapter_id))],
		}


@dataclass
class ActivityWindowReport:
	window_start: datetime
	window_end: datetime
	subjects: List[SubjectActivity] = field(default_factory=list)
	ai_message_count: int = 0

	@property
	def total_question_count(self) -> int:
		return sum(s.distinct_question_count for s in self.subjects)

	@property
	def is_empty(self) -> bool:
		return self.total_question_count == 0 and self.ai_message_count == 0

	def to_dict(self) -> Dict[str, Any]:
		return {
			"windowStart": self.window_start.isoformat(),
			"windowEnd": self.window_end.isoformat(),
			"perSubject": [s.to_dict() for s in self.subjects],
			"aiMessageCount": self.ai_message_count,
		}


def _exercise_sort_key(exercise: Exercise):
	return (exercise.section.order, exercise.section_id, exercise.order, exercise.id)


def aggregate(db: Session, user_id: int, window_start: datetime, window_end: datetime) -> ActivityWindowReport:
	"""Count distinct questions per chapter and the learner's AI questions.

	Questions are counted once per chapter however many times their exercise
	was submitted. Attempted exercises are deduplicated per chapter with the
	same rule the chapter pages use.
	"""
	with store_errors(db, "loading activity"):
		attempts = (
			db.query(ExerciseAttempt)
			.options(
				joinedload(ExerciseAttempt.exercise)
				.joinedload(Exercise.section)
				.joinedload(Section.chapter)
				.joinedload(Chapter.subject),
				joinedload(ExerciseAttempt.exercise).selectinload(Exercise.questions),
			)
			.filter(
				ExerciseAttempt.user_id == user_id,
				ExerciseAttempt.created_at >= window_start,
				ExerciseAttempt.created_at < window_end,
			)
			.all()
		)
		ai_message_count = (
			db.query(Message)
			.join(Conversation, Message.conversation_id == Conversation.id)
			.filter(
				Conversation.user_id == user_id,
				Conversation.type == "free_chat",
				Message.role == "user",
				Message.created_at >= window_start,
				Message.created_at < window_end,
			)
			.count()
		)

	by_chapter: Dict[int, List[Exercise]] = {}
	for attempt in attempts:
		by_chapter.setdefault(attempt.exercise.section.chapter_id, []).append(attempt.exercise)

	subjects: Dict[int, SubjectActivity] = {}
	for chapter_id, exercises in by_chapter.items():
		chapter = exercises[0].section.chapter
		subject = subjects.setdefault(chapter.subject_id, SubjectActivity(chapter.subject_id, chapter.subject.name))
		line = subject.chapters.setdefault(chapter_id, ChapterActivity(chapter_id, chapter.name))
		for exercise in deduplicate_exercises(sorted(exercises, key=_exercise_sort_key)):
			line.question_ids.update(q.id for q in exercise.questions)
			line.exercises.append({
				"exerciseId": exercise.id,
				"exerciseTitle": exercise.title,
				"questionCount": len(exercise.questions),
			})

	report = ActivityWindowReport(
		window_start=window_start,
		window_end=window_end,
		subjects=sorted(subjects.values(), key=lambda s: (s.subject_name, s.subject_id)),
		ai_message_count=ai_message_count,
	)
	logger.debug(
		"activity for user %s in [%s, %s): %s questions, %s AI messages",
		user_id, window_start, window_end, report.total_question_count, ai_message_count,
	)
	return report


def daily_activity(db: Session, user_id: int, day: Optional[date] = None) -> ActivityWindowReport:
	"""Activity for ``day``; defaults to the previous calendar day."""
	if day is None:
		day = local_today() - timedelta(days=1)
	return aggregate(db, user_id, *day_window(day))


def weekly_activity(db: Session, user_id: int, week_ending: Optional[date] = None) -> ActivityWindowReport:
	"""Activity for the Monday-Sunday week holding ``week_ending``; defaults to last week."""
	if week_ending is None:
		week_ending = local_today() - timedelta(days=7)
	return aggregate(db, user_id, *week_window(week_ending))
