from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import InviteRedemption, UserProfile
from ..profiles import (
	INVITEE_BONUS_DAYS,
	INVITER_BONUS_DAYS,
	extend_expiry,
	get_or_create_profile,
	profile_to_dict,
)
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: Optional[str] = Field(default=None, alias="userId")


class RedeemInviteRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: Optional[str] = Field(default=None, alias="userId")
	invite_code: Optional[str] = Field(default=None, alias="inviteCode")


def _load_or_create(db: Session, user_id: Optional[str]) -> dict:
	user_id = (user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing userId")
	try:
		row = get_or_create_profile(db, user_id)
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to load profile for %s", user_id)
		raise HTTPException(status_code=500, detail="Failed to load profile")
	return {"profile": profile_to_dict(row)}


@router.get("")
async def get_profile(user_id: Optional[str] = Query(default=None, alias="userId"), db: Session = Depends(get_db)):
	return _load_or_create(db, user_id)


@router.post("/save")
async def save_profile(req: ProfileRequest, db: Session = Depends(get_db)):
	return _load_or_create(db, req.user_id)


@router.post("/redeem-invite")
async def redeem_invite(req: RedeemInviteRequest, db: Session = Depends(get_db)):
	invite_code = (req.invite_code or "").strip()
	invitee_id = (req.user_id or "").strip()
	if not invite_code:
		raise HTTPException(status_code=400, detail="Missing inviteCode")
	if not invitee_id:
		raise HTTPException(status_code=400, detail="Missing userId")

	prior = db.query(InviteRedemption).filter(InviteRedemption.invitee_user_id == invitee_id).first()
	if prior is not None:
		raise HTTPException(status_code=400, detail="Invite already redeemed")

	inviter = db.query(UserProfile).filter(UserProfile.invite_code == invite_code).first()
	if inviter is None:
		raise HTTPException(status_code=400, detail="Invalid invite code")
	if inviter.user_id == invitee_id:
		raise HTTPException(status_code=400, detail="You cannot use your own invite code")

	invitee = db.get(UserProfile, invitee_id)
	if invitee is None:
		raise HTTPException(status_code=400, detail="Invitee profile not found")
	if invitee.invited_by_user_id:
		raise HTTPException(status_code=400, detail="Invite already applied to this account")

	now = datetime.utcnow()
	invitee.plan = "pro"
	invitee.is_pro = True
	invitee.pro_expires_at = extend_expiry(invitee.pro_expires_at, INVITEE_BONUS_DAYS, now)
	invitee.invited_by_user_id = inviter.user_id
	inviter.plan = "pro"
	inviter.is_pro = True
	inviter.pro_expires_at = extend_expiry(inviter.pro_expires_at, INVITER_BONUS_DAYS, now)
	inviter.referral_count = (inviter.referral_count or 0) + 1

	db.add(InviteRedemption(inviter_user_id=inviter.user_id, invitee_user_id=invitee_id, invite_code=invite_code))
	try:
		db.commit()
	except IntegrityError:
		db.rollback()
		raise HTTPException(status_code=400, detail="Invite already redeemed or invalid")
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to apply invite %s for %s", invite_code, invitee_id)
		raise HTTPException(status_code=500, detail="Failed to apply invite reward")

	logger.info("Invite %s redeemed by %s", invite_code, invitee_id)
	return {
		"ok": True,
		"inviteeProExpiresAt": invitee.pro_expires_at,
		"inviterProExpiresAt": inviter.pro_expires_at,
		"inviterReferralCount": inviter.referral_count,
	}


@router.post("/upgrade")
async def upgrade(
	req: ProfileRequest,
	x_admin_secret: Optional[str] = Header(default=None),
	db: Session = Depends(get_db),
):
	if not settings.admin_upgrade_secret or x_admin_secret != settings.admin_upgrade_secret:
		raise HTTPException(status_code=403, detail="Forbidden")
	user_id = (req.user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing userId")
	row = db.get(UserProfile, user_id)
	if row is None:
		raise HTTPException(status_code=400, detail="No profile found to upgrade.")
	row.plan = "pro"
	row.is_pro = True
	row.pro_expires_at = None
	row.upgrade_reason = "manual"
	try:
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to upgrade profile %s", user_id)
		raise HTTPException(status_code=500, detail="Failed to upgrade profile.")
	db.refresh(row)
	return {"profile": profile_to_dict(row)}
