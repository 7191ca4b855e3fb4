from __future__ import annotations
import logging
import re
import secrets
import string
from datetime import datetime, timedelta
from typing import Literal, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import UserProfile

logger = logging.getLogger(__name__)

Plan = Literal["free", "pro"]

INVITEE_BONUS_DAYS = 7
INVITER_BONUS_DAYS = 30
CREATE_PROFILE_ATTEMPTS = 3

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_invite_code(user_id: str) -> str:
	clean = re.sub(r"[^a-zA-Z0-9]", "", user_id or "").upper()
	part_a = clean[:4] or "USER"
	part_b = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
	return f"IELTS-{part_a}-{part_b}"


def resolve_plan(profile: Optional[UserProfile], now: Optional[datetime] = None) -> Plan:
	if profile is None:
		return "free"
	now = now or datetime.utcnow()
	if profile.pro_expires_at is not None and profile.pro_expires_at < now:
		return "free"
	if (profile.plan or "").lower() == "pro":
		return "pro"
	if profile.is_pro:
		return "pro"
	return "free"


def extend_expiry(current: Optional[datetime], days: int, now: Optional[datetime] = None) -> datetime:
	"""Add days on top of an unexpired grant, or starting from now."""
	now = now or datetime.utcnow()
	start = current if current is not None and current > now else now
	return start + timedelta(days=days)


def get_profile(db: Session, user_id: Optional[str]) -> Optional[UserProfile]:
	if not user_id:
		return None
	return db.get(UserProfile, user_id)


def get_or_create_profile(db: Session, user_id: str) -> UserProfile:
	attempts = 0
	while True:
		row = db.get(UserProfile, user_id)
		if row is not None:
			return row
		row = UserProfile(user_id=user_id, plan="free", is_pro=False, invite_code=generate_invite_code(user_id), referral_count=0)
		db.add(row)
		try:
			db.commit()
		except IntegrityError:
			# another request created the profile, or the invite code is taken
			db.rollback()
			attempts += 1
			if attempts >= CREATE_PROFILE_ATTEMPTS:
				raise
			logger.warning("Profile insert for %s collided, retrying", user_id)
			continue
		db.refresh(row)
		logger.info("Created profile for %s", user_id)
		return row


def user_plan(db: Session, user_id: Optional[str]) -> Plan:
	return resolve_plan(get_profile(db, user_id))


def profile_to_dict(row: UserProfile) -> dict:
	return {
		"user_id": row.user_id,
		"plan": resolve_plan(row),
		"stored_plan": row.plan,
		"is_pro": row.is_pro,
		"invite_code": row.invite_code,
		"referral_count": row.referral_count,
		"invited_by_user_id": row.invited_by_user_id,
		"pro_expires_at": row.pro_expires_at,
		"upgrade_reason": row.upgrade_reason,
		"created_at": row.created_at,
	}
