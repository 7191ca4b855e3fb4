"""
Speaking Scoring Module
=======================

Scores IELTS Speaking answers from their transcripts and keeps the attempt
history used by the speaking progress page.

Transcripts pass through a cheap guard first: near-empty answers, microphone
tests, URL hallucinations and heavily repeated text get a fixed band 1.0
record without calling the examiner model. Everything else is scored by the
Gemini examiner prompt and persisted as a ``SpeakingAttempt``.

API Endpoints:
- POST /api/speaking/score: score a transcript and save the attempt
- POST /api/speaking/attempts: save an attempt scored elsewhere
- GET /api/speaking/attempts: list a user's attempts, newest first
- GET /api/speaking/progress: progress report across attempts
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..gemini_client import GeminiError, ScoringClientFactory, get_client_factory, open_client
from ..guards import check_transcript, rejected_speaking_score
from ..models import SpeakingAttempt
from ..profiles import user_plan
from ..progress import SPEAKING_PARTS, derive_speaking_overall, normalize_speaking_row, summarize
from ..schemas import SpeakingScore
from ..scoring import ScoringError, build_speaking_prompt, parse_speaking_score, pick_model
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/speaking", tags=["speaking"])

GUARD_MODEL = "guard"


def safe_part(value: Any) -> str:
	return value if value in SPEAKING_PARTS else "unknown"


# ============================================================================
# REQUEST MODELS
# ============================================================================

class ScoreSpeakingRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	transcript: Optional[str] = None
	part: Optional[str] = None
	question_id: Optional[str] = Field(default=None, alias="questionId")
	question_prompt: Optional[str] = Field(default=None, alias="questionPrompt")
	user_id: Optional[str] = Field(default=None, alias="userId")
	notes: Optional[str] = None
	duration_seconds: Optional[float] = Field(default=None, alias="durationSeconds")


class SaveSpeakingAttemptRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: Optional[str] = Field(default=None, alias="userId")
	part: Optional[str] = None
	duration_seconds: Optional[float] = None
	transcript: Optional[str] = None
	question_id: Optional[str] = None
	question_prompt: Optional[str] = None
	score_json: Optional[Dict[str, Any]] = None
	overall_band: Optional[float] = None
	model: Optional[str] = None
	is_pro: bool = Field(default=False, alias="isPro")
	notes: Optional[str] = None


def speaking_to_dict(row: SpeakingAttempt) -> Dict[str, Any]:
	return {
		"id": row.id,
		"user_id": row.user_id,
		"part": row.part,
		"question_id": row.question_id,
		"question_prompt": row.question_prompt,
		"transcript": row.transcript,
		"notes": row.notes,
		"duration_seconds": row.duration_seconds,
		"model": row.model,
		"plan": row.plan,
		"is_pro": row.is_pro,
		"overall_band": row.overall_band,
		"score_json": row.score_json,
		"created_at": row.created_at,
	}


def _persist_scored_attempt(
	db: Session,
	req: ScoreSpeakingRequest,
	transcript: str,
	score: SpeakingScore,
	*,
	model: str,
	plan: str,
	is_pro: bool,
) -> Optional[str]:
	"""Save a freshly scored attempt. Failures are logged, never raised: the score stands."""
	if not req.user_id:
		return None
	row = SpeakingAttempt(
		user_id=req.user_id,
		part=safe_part(req.part),
		question_id=req.question_id,
		question_prompt=req.question_prompt,
		transcript=transcript or None,
		notes=req.notes,
		duration_seconds=req.duration_seconds if req.duration_seconds is not None else score.estimated_duration_seconds,
		model=model,
		plan=plan,
		is_pro=is_pro,
		overall_band=score.overall_band,
		score_json=score.model_dump(),
	)
	try:
		db.add(row)
		db.commit()
		return row.id
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to save speaking attempt for %s", req.user_id)
		return None


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/score")
async def score_speaking(
	req: ScoreSpeakingRequest,
	pro: bool = Query(default=False),
	db: Session = Depends(get_db),
	make_client: ScoringClientFactory = Depends(get_client_factory),
):
	if req.transcript is None:
		raise HTTPException(status_code=400, detail="Missing transcript")
	transcript = req.transcript.strip()
	part = safe_part(req.part)
	plan = user_plan(db, req.user_id)

	verdict = check_transcript(transcript)
	if verdict is not None:
		logger.info("Speaking answer rejected before scoring: %s (%d words)", verdict.reason, verdict.word_count)
		score = rejected_speaking_score(verdict, part)
		attempt_id = _persist_scored_attempt(db, req, transcript, score, model=GUARD_MODEL, plan=plan, is_pro=False)
		return {
			"transcript": transcript,
			"score": score.model_dump(),
			"computed_overall": score.computed_overall,
			"modelUsed": GUARD_MODEL,
			"plan": plan,
			"isProRequested": False,
			"attemptId": attempt_id,
		}

	if pro and plan != "pro":
		raise HTTPException(status_code=403, detail="Pro speaking scoring is only available for Pro users.")

	model = pick_model(
		pro,
		force_pro=settings.ai_pro_mode,
		free_model=settings.gemini_model_free,
		pro_model=settings.gemini_model_pro,
	)
	prompt = build_speaking_prompt(
		transcript=transcript,
		part=part,
		question_id=req.question_id,
		question_prompt=req.question_prompt,
		long_feedback=model == settings.gemini_model_pro,
	)
	client = open_client(make_client)
	try:
		raw = await client.generate(prompt, model=model)
		score = parse_speaking_score(raw)
	except (GeminiError, ScoringError) as e:
		logger.error("Speaking scoring failed with %s: %s", model, e)
		raise HTTPException(status_code=502, detail=f"Speaking scoring failed: {e}")
	finally:
		await client.aclose()

	attempt_id = _persist_scored_attempt(db, req, transcript, score, model=model, plan=plan, is_pro=pro)
	return {
		"transcript": transcript,
		"score": score.model_dump(),
		"computed_overall": score.computed_overall,
		"modelUsed": model,
		"plan": plan,
		"isProRequested": pro,
		"attemptId": attempt_id,
	}


@router.post("/attempts")
async def save_speaking_attempt(req: SaveSpeakingAttemptRequest, db: Session = Depends(get_db)):
	if not req.user_id:
		raise HTTPException(status_code=400, detail="Missing userId")
	plan = user_plan(db, req.user_id)
	# A Pro attempt cannot be recorded against a free account
	if req.is_pro and plan != "pro":
		raise HTTPException(status_code=403, detail="Cannot save Pro attempt for a Free user.")
	transcript = (req.transcript or "").strip()
	if not transcript:
		raise HTTPException(status_code=400, detail="Missing transcript")

	overall = req.overall_band
	if overall is None:
		overall = derive_speaking_overall({"score_json": req.score_json})
	row = SpeakingAttempt(
		user_id=req.user_id,
		part=safe_part(req.part),
		duration_seconds=req.duration_seconds,
		transcript=transcript,
		question_id=req.question_id,
		question_prompt=req.question_prompt,
		overall_band=overall,
		score_json=req.score_json,
		model=req.model,
		plan=plan,
		is_pro=req.is_pro and plan == "pro",
		notes=req.notes,
	)
	try:
		db.add(row)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to save speaking attempt")
		raise HTTPException(status_code=500, detail="Failed to save speaking attempt")
	return {"ok": True, "attempt": speaking_to_dict(row)}


@router.get("/attempts")
async def list_speaking_attempts(user_id: Optional[str] = Query(default=None, alias="userId"), db: Session = Depends(get_db)):
	if not user_id:
		return {"attempts": []}
	rows = (
		db.query(SpeakingAttempt)
		.filter(SpeakingAttempt.user_id == user_id)
		.order_by(SpeakingAttempt.created_at.desc())
		.all()
	)
	return {"attempts": [speaking_to_dict(r) for r in rows]}


@router.get("/progress")
async def speaking_progress(user_id: Optional[str] = Query(default=None, alias="userId"), db: Session = Depends(get_db)):
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing userId")
	rows = (
		db.query(SpeakingAttempt)
		.filter(SpeakingAttempt.user_id == user_id)
		.order_by(SpeakingAttempt.created_at.desc())
		.all()
	)
	attempts = [normalize_speaking_row(r) for r in rows]
	plan = user_plan(db, user_id)
	report = summarize(attempts, "speaking", include_insights=plan == "pro")
	return {"plan": plan, **report.model_dump()}
