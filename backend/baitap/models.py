from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Float, Boolean, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


# ---- Curriculum (read-only for the engine; written by content import) ----

class Grade(Base):
	__tablename__ = "grades"
	id = Column(Integer, primary_key=True)
	name = Column(String(128), nullable=False)
	level = Column(Integer, nullable=False)
	order = Column(Integer, default=0, nullable=False)

	subjects = relationship("Subject", back_populates="grade", order_by="Subject.order")


class Subject(Base):
	__tablename__ = "subjects"
	id = Column(Integer, primary_key=True)
	grade_id = Column(Integer, ForeignKey("grades.id"), nullable=False, index=True)
	name = Column(String(256), nullable=False)
	order = Column(Integer, default=0, nullable=False)

	grade = relationship("Grade", back_populates="subjects")
	chapters = relationship("Chapter", back_populates="subject", order_by="Chapter.order")


class Chapter(Base):
	__tablename__ = "chapters"
	id = Column(Integer, primary_key=True)
	subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
	name = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	order = Column(Integer, default=0, nullable=False)

	subject = relationship("Subject", back_populates="chapters")
	sections = relationship("Section", back_populates="chapter", order_by="Section.order")


class Section(Base):
	__tablename__ = "sections"
	id = Column(Integer, primary_key=True)
	chapter_id = Column(Integer, ForeignKey("chapters.id"), nullable=False, index=True)
	name = Column(String(256), nullable=False)
	order = Column(Integer, default=0, nullable=False)

	chapter = relationship("Chapter", back_populates="sections")
	exercises = relationship("Exercise", back_populates="section", order_by="Exercise.order")


class Exercise(Base):
	__tablename__ = "exercises"
	id = Column(Integer, primary_key=True)
	section_id = Column(Integer, ForeignKey("sections.id"), nullable=False, index=True)
	title = Column(String(512), nullable=False)
	description = Column(Text, nullable=True)
	difficulty = Column(String(16), nullable=False, default="easy")  # easy | medium | hard
	type = Column(String(32), nullable=False, default="multiple_choice")  # multiple_choice | essay
	points = Column(Integer, default=0, nullable=False)  # display only
	order = Column(Integer, default=0, nullable=False)

	section = relationship("Section", back_populates="exercises")
	questions = relationship("Question", back_populates="exercise", order_by="Question.order")


class Question(Base):
	__tablename__ = "questions"
	id = Column(Integer, primary_key=True)
	exercise_id = Column(Integer, ForeignKey("exercises.id"), nullable=False, index=True)
	question = Column(Text, nullable=False)
	answer = Column(Text, nullable=False)
	options = Column(JSON, nullable=True)  # {"A": "...", "B": "..."} for multiple choice
	hint = Column(Text, nullable=True)
	points = Column(Integer, default=1, nullable=False)
	order = Column(Integer, default=0, nullable=False)

	exercise = relationship("Exercise", back_populates="questions")


# ---- Learner state owned by the engine ----

class ExerciseAttempt(Base):
	__tablename__ = "exercise_attempts"
	# At most one row per (user, exercise); resubmissions update it in place
	__table_args__ = (UniqueConstraint("user_id", "exercise_id", name="uq_attempt_user_exercise"),)
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, nullable=False, index=True)
	exercise_id = Column(Integer, ForeignKey("exercises.id"), nullable=False, index=True)
	# {questionId: {"answer": str, "isCorrect": bool, "isAnswered": bool}}; drafts keep {questionId: str}
	answers = Column(JSON, nullable=False, default=dict)
	score = Column(Float, nullable=True)
	total_points = Column(Integer, default=0, nullable=False)
	is_completed = Column(Boolean, default=False, nullable=False)
	# Latches on the first completion so section counters are bumped once
	ever_completed = Column(Boolean, default=False, nullable=False)
	status = Column(String(16), default="submitted", nullable=False)  # draft | submitted | completed
	completed_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	exercise = relationship("Exercise")


class SectionProgress(Base):
	__tablename__ = "section_progress"
	__table_args__ = (UniqueConstraint("user_id", "section_id", name="uq_section_progress_user_section"),)
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, nullable=False, index=True)
	section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
	status = Column(String(16), default="in_progress", nullable=False)
	completed_exercises = Column(Integer, default=0, nullable=False)
	total_exercises = Column(Integer, default=0, nullable=False)
	last_accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ChapterProgress(Base):
	__tablename__ = "chapter_progress"
	__table_args__ = (UniqueConstraint("user_id", "chapter_id", name="uq_chapter_progress_user_chapter"),)
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, nullable=False, index=True)
	chapter_id = Column(Integer, ForeignKey("chapters.id"), nullable=False)
	subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
	grade_id = Column(Integer, ForeignKey("grades.id"), nullable=False)
	status = Column(String(16), default="not_started", nullable=False)
	progress = Column(Integer, default=0, nullable=False)  # percent of exercises completed
	completed_exercises = Column(Integer, default=0, nullable=False)
	total_exercises = Column(Integer, default=0, nullable=False)
	correct_questions = Column(Integer, default=0, nullable=False)
	total_questions = Column(Integer, default=0, nullable=False)
	last_accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ---- AI chat (written by the chat service, only counted here) ----

class Conversation(Base):
	__tablename__ = "conversations"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, nullable=False, index=True)
	type = Column(String(32), default="free_chat", nullable=False)
	title = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	messages = relationship("Message", back_populates="conversation")


class Message(Base):
	__tablename__ = "messages"
	id = Column(Integer, primary_key=True)
	conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
	role = Column(String(16), nullable=False)  # user | assistant
	content = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

	conversation = relationship("Conversation", back_populates="messages")
