from __future__ import annotations
import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from .db import Base
from .errors import InvalidTransition


def utcnow() -> datetime:
	return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
	return uuid.uuid4().hex


class Role(str, enum.Enum):
	student = "student"
	admin = "admin"


class FileStatus(str, enum.Enum):
	processing = "processing"
	completed = "completed"
	error = "error"


SECTIONS = ("listening", "reading", "writing", "speaking", "general")
QUESTION_DIFFICULTIES = ("easy", "medium", "hard")
LEVELS = ("beginner", "intermediate", "advanced")


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=new_id)
	name = Column(String(100), nullable=False)
	# Stored lower-cased; uniqueness is enforced by the index
	email = Column(String(256), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	role = Column(String(16), default=Role.student.value, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_login_at = Column(DateTime, nullable=True)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Primary key is the token jti
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)


class UploadedFile(Base):
	__tablename__ = "uploaded_files"
	id = Column(String(32), primary_key=True, default=new_id)
	original_name = Column(String(256), nullable=False)
	filename = Column(String(256), unique=True, nullable=False)
	mimetype = Column(String(128), nullable=False)
	size = Column(Integer, nullable=False)
	storage_path = Column(String(512), nullable=False)
	uploaded_by = Column(String(32), ForeignKey("users.id"), nullable=False)
	status = Column(String(16), default=FileStatus.processing.value, nullable=False)
	section = Column(String(16), default="general", nullable=False)
	questions_extracted = Column(Integer, default=0, nullable=False)
	processing_error = Column(Text, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

	def _leave_processing(self, target: FileStatus) -> None:
		if self.status != FileStatus.processing.value:
			raise InvalidTransition(f"cannot move file from {self.status} to {target.value}")
		self.status = target.value

	def mark_completed(self, questions_extracted: int) -> None:
		self._leave_processing(FileStatus.completed)
		self.questions_extracted = questions_extracted
		self.processing_error = None

	def mark_error(self, message: str) -> None:
		self._leave_processing(FileStatus.error)
		self.processing_error = message


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(32), primary_key=True, default=new_id)
	title = Column(String(256), nullable=False)
	content = Column(Text, nullable=False)
	section = Column(String(16), nullable=False, index=True)
	difficulty = Column(String(16), default="medium", nullable=False)
	options = Column(JSON, default=list, nullable=False)
	correct_answer = Column(Text, nullable=True)
	explanation = Column(Text, nullable=True)
	source_file_id = Column(String(32), ForeignKey("uploaded_files.id"), nullable=True, index=True)
	source_filename = Column(String(256), nullable=True)
	tags = Column(JSON, default=list, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class ReadingTest(Base):
	__tablename__ = "reading_tests"
	id = Column(String(32), primary_key=True, default=new_id)
	title = Column(String(256), nullable=False)
	passage_title = Column(String(256), nullable=True)
	passage_content = Column(Text, nullable=False)
	passage_summary = Column(Text, nullable=True)
	word_count = Column(Integer, default=0, nullable=False)
	theme = Column(String(32), nullable=False, index=True)
	level = Column(String(16), nullable=False, index=True)
	questions = Column(JSON, nullable=False)  # [{number, question, options, correctAnswer, ...}]
	time_limit = Column(Integer, default=20, nullable=False)
	total_attempts = Column(Integer, default=0, nullable=False)
	average_score = Column(Float, default=0.0, nullable=False)
	average_time_spent = Column(Float, default=0.0, nullable=False)
	created_by = Column(String(32), ForeignKey("users.id"), nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class ReadingTestAttempt(Base):
	__tablename__ = "reading_attempts"
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	test_id = Column(String(32), ForeignKey("reading_tests.id"), index=True, nullable=False)
	answers = Column(JSON, nullable=False)
	correct_answers = Column(Integer, nullable=False)
	percentage = Column(Float, nullable=False)
	band_score = Column(Integer, nullable=False)
	start_time = Column(DateTime, nullable=False)
	end_time = Column(DateTime, nullable=False)
	total_time_spent = Column(Integer, nullable=False)  # minutes
	performance = Column(JSON, nullable=True)
	feedback = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class ListeningExercise(Base):
	__tablename__ = "listening_exercises"
	id = Column(String(32), primary_key=True, default=new_id)
	title = Column(String(256), nullable=False)
	conversation = Column(Text, nullable=False)  # text for TTS
	questions = Column(JSON, nullable=False)
	difficulty = Column(String(16), default="intermediate", nullable=False)
	topic = Column(String(128), default="general", nullable=False)
	duration = Column(Integer, default=10, nullable=False)  # minutes
	created_by = Column(String(32), ForeignKey("users.id"), nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class ListeningAttempt(Base):
	__tablename__ = "listening_attempts"
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	exercise_id = Column(String(32), ForeignKey("listening_exercises.id"), index=True, nullable=False)
	answers = Column(JSON, nullable=False)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	correct_answers = Column(Integer, nullable=False)
	start_time = Column(DateTime, nullable=False)
	end_time = Column(DateTime, nullable=False)
	total_time_spent = Column(Integer, nullable=False)  # minutes
	created_at = Column(DateTime, default=utcnow, nullable=False)
