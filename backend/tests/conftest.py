from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from baitap.db import Base, get_db
from baitap.grading import VisionVerdict
from baitap.identity import Learner
from baitap.main import app
from baitap.models import Chapter, Exercise, Grade, Question, Section, Subject
from baitap.routers.auth import create_access_token
from baitap.routers.exercises import get_essay_grader
from baitap.settings import settings


@pytest.fixture(autouse=True)
def utc_reports(monkeypatch):
	monkeypatch.setattr(settings, "report_timezone", "UTC")


@pytest.fixture
def engine():
	eng = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(bind=eng)
	yield eng
	eng.dispose()


@pytest.fixture
def db(engine):
	Session = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
	session = Session()
	try:
		yield session
	finally:
		session.close()


def _mc(qid, exercise_id, answer, points, order):
	return Question(
		id=qid, exercise_id=exercise_id, question=f"Question {qid}", answer=answer,
		options={"A": "one", "B": "two", "C": "three", "D": "four"}, points=points, order=order,
	)


def seed_curriculum(db):
	"""Two grades of content with a duplicated exercise in chapter 1.

	Chapter 1 (Math, grade 1) has sections 10 and 11. Exercise 100 "Addition"
	(medium) appears again as exercise 102 in section 11 and must be dropped.
	"""
	db.add_all([
		Grade(id=1, name="Grade 6", level=6, order=1),
		Grade(id=2, name="Grade 7", level=7, order=2),
		Subject(id=1, grade_id=1, name="Math", order=1),
		Subject(id=2, grade_id=1, name="English", order=2),
		Subject(id=3, grade_id=2, name="Math", order=1),
		Chapter(id=1, subject_id=1, name="Chapter 1: Numbers", order=1),
		Chapter(id=2, subject_id=1, name="Chapter 2: Fractions", order=2),
		Chapter(id=3, subject_id=2, name="Chapter 1: Greetings", order=1),
		Chapter(id=9, subject_id=3, name="Chapter 1: Algebra", order=1),
		Section(id=10, chapter_id=1, name="Basics", order=1),
		Section(id=11, chapter_id=1, name="Review", order=2),
		Section(id=20, chapter_id=2, name="Parts", order=1),
		Section(id=30, chapter_id=3, name="Hello", order=1),
		Section(id=90, chapter_id=9, name="Unknowns", order=1),
	])
	db.add_all([
		Exercise(id=99, section_id=10, title="Warm-up", difficulty="easy", type="multiple_choice", points=5, order=0),
		Exercise(id=100, section_id=10, title="Addition", difficulty="medium", type="multiple_choice", points=10, order=1),
		Exercise(id=101, section_id=10, title="Number words", difficulty="medium", type="essay", points=5, order=2),
		Exercise(id=102, section_id=11, title="Addition", difficulty="medium", type="multiple_choice", points=10, order=1),
		Exercise(id=103, section_id=11, title="Long division", difficulty="hard", type="multiple_choice", points=10, order=2),
		Exercise(id=200, section_id=20, title="Halves", difficulty="medium", type="multiple_choice", points=10, order=1),
		Exercise(id=300, section_id=30, title="Greetings", difficulty="medium", type="multiple_choice", points=10, order=1),
		Exercise(id=900, section_id=90, title="Solve for x", difficulty="medium", type="multiple_choice", points=10, order=1),
	])
	db.add_all([
		_mc(990, 99, "A", 1, 1),
		_mc(1001, 100, "A", 2, 1),
		_mc(1002, 100, "B", 3, 2),
		_mc(1003, 100, "C", 5, 3),
		Question(id=1011, exercise_id=101, question="Write 10 in words", answer="Ten", points=1, order=1),
		Question(id=1012, exercise_id=101, question="Write 12 in words", answer="twelve", points=1, order=2),
		_mc(1021, 102, "D", 1, 1),
		_mc(1031, 103, "A", 1, 1),
		_mc(2001, 200, "A", 1, 1),
		_mc(2002, 200, "B", 1, 2),
		_mc(3001, 300, "C", 1, 1),
		_mc(3002, 300, "D", 1, 2),
		_mc(3003, 300, "A", 1, 3),
		_mc(9001, 900, "A", 1, 1),
	])
	db.commit()
	return SimpleNamespace(
		chapter=1,
		addition=100,
		addition_duplicate=102,
		number_words=101,
		warm_up=99,
		long_division=103,
		halves=200,
		greetings=300,
		other_grade_chapter=9,
		other_grade_exercise=900,
	)


@pytest.fixture
def curriculum(db):
	return seed_curriculum(db)


@pytest.fixture
def file_sessions(tmp_path):
	"""Two sessions on one file-backed database, for interleaving writers."""
	eng = create_engine(
		f"sqlite:///{tmp_path / 'baitap.db'}",
		connect_args={"check_same_thread": False},
		future=True,
	)
	Base.metadata.create_all(bind=eng)
	Session = sessionmaker(autocommit=False, autoflush=False, bind=eng, future=True)
	first, second = Session(), Session()
	seed_curriculum(first)
	try:
		yield first, second
	finally:
		first.close()
		second.close()
		eng.dispose()


@pytest.fixture
def learner():
	# level 6 -> medium exercises
	return Learner(user_id=1, username="an", level=6, grade_id=1)


@pytest.fixture
def auth_headers(learner):
	return {"Authorization": f"Bearer {create_access_token(learner)}"}


class FakeEssayGrader:
	def __init__(self, verdicts):
		self.verdicts = list(verdicts)
		self.calls = []

	async def grade(self, image, question, answer):
		self.calls.append((image.data, question, answer))
		return self.verdicts[len(self.calls) - 1]


@pytest.fixture
def fake_grader():
	return FakeEssayGrader([
		VisionVerdict(score=90, feedback="Good handwriting", is_correct=True),
		VisionVerdict(score=80, feedback="Correct", is_correct=True),
	])


@pytest.fixture
def client(db, fake_grader):
	def _get_db():
		yield db

	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_essay_grader] = lambda: fake_grader
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()
