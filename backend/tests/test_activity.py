from datetime import date, datetime

import pytest

from baitap import activity
from baitap.activity import aggregate, daily_activity, day_window, parse_day, week_window, weekly_activity
from baitap.errors import ValidationError
from baitap.models import Conversation, ExerciseAttempt, Message
from baitap.settings import settings

DAY = date(2026, 10, 14)


def _attempt(db, exercise_id, created_at, user_id=1, status="submitted"):
	db.add(ExerciseAttempt(
		user_id=user_id, exercise_id=exercise_id, answers={}, status=status, created_at=created_at,
	))
	db.commit()


def _message(db, created_at, role="user", type="free_chat", user_id=1):
	conversation = Conversation(user_id=user_id, type=type)
	db.add(conversation)
	db.flush()
	db.add(Message(conversation_id=conversation.id, role=role, content="why is the sky blue?", created_at=created_at))
	db.commit()


def test_day_window_is_utc_midnight_to_midnight():
	assert day_window(DAY) == (datetime(2026, 10, 14), datetime(2026, 10, 15))


def test_day_window_follows_report_timezone(monkeypatch):
	monkeypatch.setattr(settings, "report_timezone", "Asia/Ho_Chi_Minh")
	assert day_window(DAY) == (datetime(2026, 10, 13, 17), datetime(2026, 10, 14, 17))


def test_week_window_runs_monday_to_monday():
	start, end = week_window(DAY)
	assert start == datetime(2026, 10, 12)
	assert end == datetime(2026, 10, 19)
	assert week_window(date(2026, 10, 18)) == (start, end)


def test_parse_day():
	assert parse_day("2026-10-14") == DAY
	assert parse_day(None) is None
	assert parse_day("") is None
	with pytest.raises(ValidationError):
		parse_day("14/10/2026")


def test_counts_distinct_questions_per_subject_and_chapter(db, curriculum):
	noon = datetime(2026, 10, 14, 12)
	_attempt(db, curriculum.addition, noon)
	_attempt(db, curriculum.number_words, noon)
	_attempt(db, curriculum.greetings, noon)
	report = daily_activity(db, 1, DAY)
	assert report.total_question_count == 8
	english, math = report.subjects
	assert english.subject_name == "English"
	assert english.distinct_question_count == 3
	assert math.distinct_question_count == 5
	chapter = math.chapters[curriculum.chapter]
	assert [e["exerciseId"] for e in chapter.exercises] == [curriculum.addition, curriculum.number_words]


def test_duplicate_exercises_are_counted_once(db, curriculum):
	noon = datetime(2026, 10, 14, 12)
	_attempt(db, curriculum.addition_duplicate, noon)
	_attempt(db, curriculum.addition, noon)
	report = daily_activity(db, 1, DAY)
	(math,) = report.subjects
	assert math.distinct_question_count == 3
	assert [e["exerciseId"] for e in math.chapters[curriculum.chapter].exercises] == [curriculum.addition]


def test_window_is_closed_open(db, curriculum):
	_attempt(db, curriculum.addition, datetime(2026, 10, 14, 0, 0, 0))
	_attempt(db, curriculum.number_words, datetime(2026, 10, 15, 0, 0, 0))
	_attempt(db, curriculum.greetings, datetime(2026, 10, 13, 23, 59, 59))
	report = daily_activity(db, 1, DAY)
	assert report.total_question_count == 3
	assert [s.subject_name for s in report.subjects] == ["Math"]


def test_drafts_count_as_activity(db, curriculum):
	_attempt(db, curriculum.halves, datetime(2026, 10, 14, 8), status="draft")
	assert daily_activity(db, 1, DAY).total_question_count == 2


def test_other_learners_are_excluded(db, curriculum):
	_attempt(db, curriculum.addition, datetime(2026, 10, 14, 8), user_id=2)
	_message(db, datetime(2026, 10, 14, 8), user_id=2)
	assert daily_activity(db, 1, DAY).is_empty


def test_counts_only_learner_free_chat_questions(db, curriculum):
	inside = datetime(2026, 10, 14, 9)
	_message(db, inside)
	_message(db, inside)
	_message(db, inside, role="assistant")
	_message(db, inside, type="exercise_help")
	_message(db, datetime(2026, 10, 15, 0, 0))
	report = daily_activity(db, 1, DAY)
	assert report.ai_message_count == 2
	assert report.total_question_count == 0
	assert not report.is_empty


def test_weekly_report_spans_whole_week(db, curriculum):
	_attempt(db, curriculum.addition, datetime(2026, 10, 12, 0, 0))
	_attempt(db, curriculum.halves, datetime(2026, 10, 18, 23, 59))
	_attempt(db, curriculum.greetings, datetime(2026, 10, 19, 0, 0))
	report = weekly_activity(db, 1, DAY)
	assert report.total_question_count == 5
	data = report.to_dict()
	assert data["windowStart"] == "2026-10-12T00:00:00"
	assert data["windowEnd"] == "2026-10-19T00:00:00"
	(math,) = data["perSubject"]
	assert [c["chapterName"] for c in math["perChapter"]] == ["Chapter 1: Numbers", "Chapter 2: Fractions"]


def test_defaults_to_yesterday_and_last_week(db, curriculum, monkeypatch):
	monkeypatch.setattr(activity, "local_today", lambda: date(2026, 10, 15))
	assert daily_activity(db, 1).window_start == datetime(2026, 10, 14)
	assert weekly_activity(db, 1).window_start == datetime(2026, 10, 5)


def test_empty_window(db, curriculum):
	report = aggregate(db, 1, datetime(2026, 1, 1), datetime(2026, 1, 2))
	assert report.is_empty
	assert report.to_dict()["perSubject"] == []


def test_resubmitting_in_window_counts_questions_once(db, curriculum, learner):
	from baitap.progress import submit_exercise

	submit_exercise(db, learner, curriculum.addition, {"1001": "B"})
	submit_exercise(db, learner, curriculum.addition, {"1001": "A", "1002": "B", "1003": "C"})
	today = datetime.utcnow().date()
	report = daily_activity(db, learner.user_id, today)
	assert report.total_question_count == 3
