from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from .db import Base


MATERIAL_TYPES = ("pdf", "quiz", "audio", "text")
MATERIAL_STATUSES = ("draft", "published")
PROGRESS_STATUSES = ("not-started", "in-progress", "completed")
ADVICE_TYPES = ("motivation", "weakness", "strategy", "progress", "alert", "general")


class Material(Base):
	__tablename__ = "materials"
	id = Column(Integer, primary_key=True, autoincrement=True)
	title = Column(Text, nullable=False)
	description = Column(Text, nullable=True)
	# JSON text whose shape depends on type (pdf chunks, quiz metadata, audio script)
	content = Column(Text, nullable=True)
	type = Column(String(16), default="text", nullable=False)
	status = Column(String(16), default="draft", nullable=True)
	file_path = Column(Text, nullable=True)
	published_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MaterialSection(Base):
	__tablename__ = "material_sections"
	id = Column(Integer, primary_key=True, autoincrement=True)
	material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)
	title = Column(Text, nullable=False)
	content = Column(Text, nullable=True)
	audio_url = Column(Text, nullable=True)
	position = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Question(Base):
	__tablename__ = "questions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	material_id = Column(Integer, ForeignKey("materials.id"), nullable=True, index=True)
	question = Column(Text, nullable=False)
	type = Column(String(32), default="multiple-choice", nullable=False)
	correct_answer = Column(Text, nullable=True)
	options = Column(Text, nullable=True)  # JSON-encoded choice list
	explanation = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Quiz(Base):
	"""Legacy standalone quiz table, superseded by materials of type quiz."""

	__tablename__ = "quizzes"
	id = Column(String(64), primary_key=True)
	title = Column(Text, nullable=False)
	topic = Column(Text, nullable=False, default="")
	difficulty = Column(String(16), default="medium", nullable=True)
	question_count = Column(Integer, default=0, nullable=True)
	metadata_json = Column("metadata", Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QuizQuestion(Base):
	__tablename__ = "quiz_questions"
	id = Column(String(64), primary_key=True)
	quiz_id = Column(String(64), ForeignKey("quizzes.id"), nullable=False, index=True)
	type = Column(String(32), default="multiple-choice", nullable=False)
	question = Column(Text, nullable=False)
	options = Column(Text, nullable=True)
	correct_answer = Column(Text, nullable=False, default="")
	explanation = Column(Text, nullable=True)
	difficulty = Column(String(16), default="medium", nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserProgress(Base):
	__tablename__ = "user_progress"
	__table_args__ = (UniqueConstraint("user_id", "content_id", name="uq_user_progress_content"),)
	id = Column(String(64), primary_key=True)
	user_id = Column(String(128), nullable=False, index=True)
	content_id = Column(String(64), nullable=False)
	status = Column(String(16), default="not-started", nullable=False)
	completion_percentage = Column(Integer, default=0, nullable=False)
	time_spent = Column(Integer, default=0, nullable=False)
	last_accessed = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SectionProgress(Base):
	__tablename__ = "section_progress"
	id = Column(String(64), primary_key=True)
	progress_id = Column(String(64), ForeignKey("user_progress.id"), nullable=False, index=True)
	section_id = Column(String(64), nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	time_spent = Column(Integer, default=0, nullable=False)
	last_accessed = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class QuizResult(Base):
	__tablename__ = "quiz_results"
	id = Column(String(64), primary_key=True)
	progress_id = Column(String(64), ForeignKey("user_progress.id"), nullable=False, index=True)
	quiz_id = Column(String(64), nullable=False)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	correct_answers = Column(Integer, nullable=False)
	completed_at = Column(DateTime, nullable=False)
	time_spent = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AnswerDetail(Base):
	__tablename__ = "answer_details"
	id = Column(String(64), primary_key=True)
	quiz_result_id = Column(String(64), ForeignKey("quiz_results.id"), nullable=False, index=True)
	question_id = Column(String(64), nullable=False)
	user_answer = Column(Text, nullable=False)  # JSON string or list
	is_correct = Column(Boolean, nullable=False)
	time_spent = Column(Integer, default=0, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Advice(Base):
	__tablename__ = "advice"
	id = Column(String(64), primary_key=True)
	user_id = Column(String(128), nullable=False, index=True)
	type = Column(String(16), nullable=False)
	content = Column(Text, nullable=False)
	sources = Column(Text, nullable=True)
	metadata_json = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AdviceFeedback(Base):
	__tablename__ = "advice_feedback"
	id = Column(String(64), primary_key=True)
	advice_id = Column(String(64), ForeignKey("advice.id"), nullable=False, index=True)
	user_id = Column(String(128), nullable=True)
	feedback = Column(String(16), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
