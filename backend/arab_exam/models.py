from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=_new_id)
	email = Column(String(256), unique=True, index=True, nullable=False)
	# Empty for accounts created through Google sign-in
	password_hash = Column(String(256), default="", nullable=False)
	full_name = Column(String(128), nullable=False)
	language_preference = Column(String(8), default="uz", nullable=False)
	subscription_tier = Column(String(16), default="FREE", nullable=False)
	subscription_expires_at = Column(DateTime, nullable=True)
	is_admin = Column(Boolean, default=False, nullable=False)
	google_id = Column(String(128), unique=True, nullable=True)
	avatar_url = Column(String(512), nullable=True)
	last_login = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	progress = relationship("UserProgress", back_populates="user", uselist=False, cascade="all, delete-orphan")
	attempts = relationship("UserExamAttempt", back_populates="user", cascade="all, delete-orphan")
	payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")


class UserProgress(Base):
	__tablename__ = "user_progress"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
	total_exams_taken = Column(Integer, default=0, nullable=False)
	current_cefr_estimate = Column(String(8), nullable=True)
	current_streak_days = Column(Integer, default=0, nullable=False)
	skill_scores = Column(Text, nullable=True)  # JSON string {skill: score}
	last_activity_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	user = relationship("User", back_populates="progress")


class Purchase(Base):
	__tablename__ = "purchases"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	product_type = Column(String(32), nullable=False)
	quantity = Column(Integer, default=1, nullable=False)
	remaining_uses = Column(Integer, default=1, nullable=False)
	expires_at = Column(DateTime, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Subscription(Base):
	__tablename__ = "subscriptions"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	plan_type = Column(String(16), default="pro", nullable=False)
	status = Column(String(16), default="active", nullable=False)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	expires_at = Column(DateTime, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UsageTracking(Base):
	__tablename__ = "usage_tracking"
	__table_args__ = (UniqueConstraint("user_id", "type", "period_start", name="uq_usage_user_type_period"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	type = Column(String(16), nullable=False)
	used_count = Column(Integer, default=0, nullable=False)
	period_start = Column(DateTime, nullable=False)
	period_end = Column(DateTime, nullable=False)


class QuestionBank(Base):
	__tablename__ = "question_bank"
	id = Column(String(32), primary_key=True, default=_new_id)
	level = Column(String(4), index=True, nullable=False)
	section = Column(String(32), index=True, nullable=False)
	task_type = Column(String(32), default="mcq", nullable=False)
	prompt = Column(Text, nullable=False)
	options = Column(Text, nullable=True)  # JSON string
	correct_answer = Column(Text, nullable=True)
	transcript = Column(Text, nullable=True)
	passage = Column(Text, nullable=True)
	audio_url = Column(String(512), nullable=True)
	rubric = Column(Text, nullable=True)
	difficulty = Column(Integer, default=1, nullable=False)
	tags = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class MockExam(Base):
	__tablename__ = "mock_exams"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	duration_minutes = Column(Integer, default=60, nullable=False)
	use_ai_generation = Column(Boolean, default=False, nullable=False)
	number_of_questions = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	questions = relationship(
		"MockExamQuestion",
		back_populates="mock_exam",
		order_by="MockExamQuestion.order",
		cascade="all, delete-orphan",
	)


class MockExamQuestion(Base):
	__tablename__ = "mock_exam_questions"
	id = Column(String(32), primary_key=True, default=_new_id)
	mock_exam_id = Column(String(32), ForeignKey("mock_exams.id", ondelete="CASCADE"), index=True, nullable=False)
	question_id = Column(String(32), ForeignKey("question_bank.id", ondelete="CASCADE"), nullable=False)
	order = Column(Integer, default=0, nullable=False)

	mock_exam = relationship("MockExam", back_populates="questions")
	question = relationship("QuestionBank")


class UserExamAttempt(Base):
	__tablename__ = "user_exam_attempts"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	mock_exam_id = Column(String(32), ForeignKey("mock_exams.id", ondelete="SET NULL"), nullable=True)
	level = Column(String(4), nullable=True)
	status = Column(String(16), default="IN_PROGRESS", nullable=False)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)
	total_score = Column(Float, nullable=True)
	max_possible_score = Column(Float, nullable=True)
	percentage = Column(Float, nullable=True)
	cefr_level_achieved = Column(String(4), nullable=True)
	cefr_feedback = Column(Text, nullable=True)
	section_scores = Column(Text, nullable=True)  # JSON string {section: {score, max}}
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	user = relationship("User", back_populates="attempts")
	mock_exam = relationship("MockExam")
	attempt_questions = relationship(
		"AttemptQuestion",
		back_populates="attempt",
		order_by="AttemptQuestion.order",
		cascade="all, delete-orphan",
	)
	answers = relationship("UserAnswer", back_populates="attempt", cascade="all, delete-orphan")


class AttemptQuestion(Base):
	__tablename__ = "attempt_questions"
	id = Column(String(32), primary_key=True, default=_new_id)
	attempt_id = Column(String(32), ForeignKey("user_exam_attempts.id", ondelete="CASCADE"), index=True, nullable=False)
	source_question_id = Column(String(32), nullable=True)
	order = Column(Integer, nullable=False)
	section = Column(String(32), nullable=True)
	task_type = Column(String(32), nullable=True)
	question_type = Column(String(32), default="MULTIPLE_CHOICE", nullable=False)
	question_text = Column(Text, nullable=False)
	transcript = Column(Text, nullable=True)
	passage = Column(Text, nullable=True)
	options = Column(Text, nullable=True)  # JSON string
	correct_answer = Column(Text, nullable=True)
	rubric = Column(Text, nullable=True)  # JSON string
	points = Column(Float, default=0, nullable=False)
	max_score = Column(Float, nullable=True)
	audio_url = Column(String(512), nullable=True)
	word_limit = Column(Integer, nullable=True)

	attempt = relationship("UserExamAttempt", back_populates="attempt_questions")
	answers = relationship("UserAnswer", back_populates="attempt_question", cascade="all, delete-orphan")


class UserAnswer(Base):
	__tablename__ = "user_answers"
	__table_args__ = (UniqueConstraint("attempt_id", "attempt_question_id", name="uq_answer_attempt_question"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	attempt_id = Column(String(32), ForeignKey("user_exam_attempts.id", ondelete="CASCADE"), index=True, nullable=False)
	attempt_question_id = Column(String(32), ForeignKey("attempt_questions.id", ondelete="CASCADE"), nullable=False)
	answer_text = Column(Text, nullable=True)
	audio_url = Column(String(512), nullable=True)
	is_correct = Column(Boolean, nullable=True)
	points_earned = Column(Float, nullable=True)
	score = Column(Float, nullable=True)
	ai_feedback = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	attempt = relationship("UserExamAttempt", back_populates="answers")
	attempt_question = relationship("AttemptQuestion", back_populates="answers")


class Payment(Base):
	__tablename__ = "payments"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	amount = Column(Float, nullable=False)
	currency = Column(String(8), default="UZS", nullable=False)
	status = Column(String(16), default="PENDING", nullable=False)
	provider = Column(String(32), nullable=False)
	plan_id = Column(String(32), nullable=True)
	payment_provider_id = Column(String(128), nullable=True)
	paid_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	user = relationship("User", back_populates="payments")


class AITutorConversation(Base):
	__tablename__ = "ai_tutor_conversations"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	question_asked = Column(Text, nullable=False)
	ai_response = Column(Text, nullable=False)
	tokens_used = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
