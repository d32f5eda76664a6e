from datetime import date, datetime

from sqlalchemy.orm import sessionmaker

from baitap.digest import DigestRecipient, build_weekly_digests
from baitap.models import ExerciseAttempt


class RecordingSender:
	def __init__(self, broken_for=()):
		self.sent = []
		self.broken_for = set(broken_for)

	def send(self, recipient, report):
		if recipient.user_id in self.broken_for:
			raise ConnectionError("smtp down")
		self.sent.append((recipient.username, report.total_question_count))


def _recipients():
	return [
		DigestRecipient(user_id=1, username="an", email="an@example.com"),
		DigestRecipient(user_id=2, username="binh", email="binh@example.com"),
		DigestRecipient(user_id=3, username="chi", email="chi@example.com"),
	]


def test_sends_last_week_and_skips_idle_learners(db, curriculum):
	db.add_all([
		ExerciseAttempt(user_id=1, exercise_id=curriculum.addition, answers={}, created_at=datetime(2026, 10, 13, 10)),
		ExerciseAttempt(user_id=3, exercise_id=curriculum.greetings, answers={}, created_at=datetime(2026, 10, 20, 10)),
	])
	db.commit()
	sender = RecordingSender()
	summary = build_weekly_digests(db, _recipients(), sender, today=date(2026, 10, 19))
	assert sender.sent == [("an", 3)]
	assert summary == {"success": 1, "failed": 0, "skipped": 2, "total": 3}


def test_one_failure_does_not_stop_the_run(db, curriculum):
	db.add_all([
		ExerciseAttempt(user_id=1, exercise_id=curriculum.addition, answers={}, created_at=datetime(2026, 10, 13, 10)),
		ExerciseAttempt(user_id=2, exercise_id=curriculum.halves, answers={}, created_at=datetime(2026, 10, 14, 10)),
	])
	db.commit()
	sender = RecordingSender(broken_for={1})
	summary = build_weekly_digests(db, _recipients(), sender, today=date(2026, 10, 19))
	assert sender.sent == [("binh", 2)]
	assert summary == {"success": 1, "failed": 1, "skipped": 1, "total": 3}


def test_scheduler_passes_its_own_session(engine, db, curriculum):
	db.add(ExerciseAttempt(user_id=2, exercise_id=curriculum.greetings, answers={}, created_at=datetime(2026, 10, 16, 10)))
	db.commit()
	session = sessionmaker(bind=engine, future=True)()
	try:
		sender = RecordingSender()
		summary = build_weekly_digests(session, _recipients()[1:2], sender, today=date(2026, 10, 19))
	finally:
		session.close()
	assert sender.sent == [("binh", 3)]
	assert summary["success"] == 1
