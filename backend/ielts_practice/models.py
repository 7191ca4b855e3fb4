from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, Float, JSON, UniqueConstraint
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class UserProfile(Base):
	__tablename__ = "user_profiles"
	# One row per external user id; created lazily on first profile fetch
	user_id = Column(String(128), primary_key=True, index=True)
	plan = Column(String(16), default="free", nullable=False)
	is_pro = Column(Boolean, default=False, nullable=False)
	invite_code = Column(String(32), unique=True, index=True, nullable=True)
	referral_count = Column(Integer, default=0, nullable=False)
	invited_by_user_id = Column(String(128), nullable=True)
	pro_expires_at = Column(DateTime, nullable=True)
	upgrade_reason = Column(String(32), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class InviteRedemption(Base):
	__tablename__ = "invite_redemptions"
	id = Column(String(32), primary_key=True, default=_new_id)
	inviter_user_id = Column(String(128), nullable=False)
	# An account can only ever redeem one invite
	invitee_user_id = Column(String(128), unique=True, nullable=False)
	invite_code = Column(String(32), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WritingTask(Base):
	__tablename__ = "writing_tasks"
	id = Column(String(64), primary_key=True)
	module = Column(String(16), nullable=False, default="academic")
	task_type = Column(String(16), nullable=False)
	title = Column(String(256), nullable=True)
	prompt = Column(Text, nullable=False)
	min_words = Column(Integer, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class EssayAttempt(Base):
	__tablename__ = "essay_attempts"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(128), index=True, nullable=True)
	question_id = Column(String(64), nullable=True)
	question_text = Column(Text, nullable=True)
	module = Column(String(16), nullable=True)
	task = Column(String(16), nullable=True)
	essay_text = Column(Text, nullable=True)
	word_count = Column(Integer, nullable=True)
	is_pro = Column(Boolean, default=False, nullable=False)
	task_response = Column(Float, nullable=True)
	coherence = Column(Float, nullable=True)
	lexical = Column(Float, nullable=True)
	grammar = Column(Float, nullable=True)
	overall_band = Column(Float, nullable=True)
	# Full scoring record as returned by the examiner model
	score_json = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class SpeakingAttempt(Base):
	__tablename__ = "speaking_attempts"
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(128), index=True, nullable=True)
	part = Column(String(16), nullable=True)
	question_id = Column(String(64), nullable=True)
	question_prompt = Column(Text, nullable=True)
	transcript = Column(Text, nullable=True)
	notes = Column(Text, nullable=True)
	duration_seconds = Column(Float, nullable=True)
	model = Column(String(64), nullable=True)
	plan = Column(String(16), nullable=True)
	is_pro = Column(Boolean, default=False, nullable=False)
	overall_band = Column(Float, nullable=True)
	score_json = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class EssayDraft(Base):
	__tablename__ = "essay_drafts"
	__table_args__ = (UniqueConstraint("user_id", "question_id", name="uq_essay_drafts_user_question"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	user_id = Column(String(128), nullable=False)
	question_id = Column(String(64), nullable=False)
	mode = Column(String(16), nullable=True)
	task = Column(String(16), nullable=True)
	essay_text = Column(Text, nullable=False, default="")
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
