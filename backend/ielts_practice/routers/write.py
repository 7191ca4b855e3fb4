from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..bands import overall_from
from ..db import get_db
from ..gemini_client import GeminiError, ScoringClientFactory, get_client_factory, open_client
from ..guards import check_essay, rejected_writing_score
from ..models import EssayAttempt, EssayDraft, WritingTask
from ..profiles import user_plan
from ..progress import derive_essay_overall, normalize_essay_row, summarize, unwrap_score_json
from ..scoring import ScoringError, build_writing_prompt, parse_writing_score, pick_model, resolve_canonical_task
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["writing"])

Identifier = Union[str, int]


def _as_id(value: Optional[Identifier]) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


def _number_or_none(value: Any) -> Optional[float]:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return None
	return float(value)


class ScoreEssayRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	essay: Optional[str] = None
	task: Optional[str] = None
	mode: str = "academic"
	word_count: Optional[int] = Field(default=None, alias="wordCount")
	question: Optional[str] = None
	question_id: Optional[Identifier] = Field(default=None, alias="questionId")
	task_type: Optional[str] = Field(default=None, alias="taskType")
	min_words: Optional[int] = Field(default=None, alias="minWords")
	user_id: Optional[str] = Field(default=None, alias="userId")


class SaveAttemptRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: Optional[str] = Field(default=None, alias="userId")
	question_id: Optional[Identifier] = Field(default=None, alias="questionId")
	question_text: Optional[str] = Field(default=None, alias="questionText")
	module: Optional[str] = None
	task: Optional[str] = None
	essay: Optional[str] = None
	essay_text: Optional[str] = Field(default=None, alias="essayText")
	word_count: Optional[int] = Field(default=None, alias="wordCount")
	is_pro: bool = Field(default=False, alias="isPro")
	score_json: Optional[Dict[str, Any]] = Field(default=None, alias="scoreJson")
	task_response: Optional[float] = Field(default=None, alias="taskResponse")
	coherence: Optional[float] = None
	lexical: Optional[float] = None
	grammar: Optional[float] = None
	overall_band: Optional[float] = Field(default=None, alias="overallBand")


class SaveDraftRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	user_id: Optional[str] = Field(default=None, alias="userId")
	question_id: Optional[Identifier] = Field(default=None, alias="questionId")
	mode: Optional[str] = None
	task: Optional[str] = None
	essay: str = ""


def essay_to_dict(row: EssayAttempt) -> Dict[str, Any]:
	return {
		"id": row.id,
		"user_id": row.user_id,
		"question_id": row.question_id,
		"question_text": row.question_text,
		"module": row.module,
		"task": row.task,
		"essay_text": row.essay_text,
		"word_count": row.word_count,
		"is_pro": row.is_pro,
		"task_response": row.task_response,
		"coherence": row.coherence,
		"lexical": row.lexical,
		"grammar": row.grammar,
		"overall_band": row.overall_band,
		"score_json": row.score_json,
		"created_at": row.created_at,
	}


def task_to_dict(row: WritingTask) -> Dict[str, Any]:
	return {
		"id": row.id,
		"module": row.module,
		"task_type": row.task_type,
		"title": row.title,
		"prompt": row.prompt,
		"min_words": row.min_words,
		"is_active": row.is_active,
		"created_at": row.created_at,
	}


# ============================================================================
# SCORING
# ============================================================================

@router.post("/score")
async def score_essay(
	req: ScoreEssayRequest,
	pro: bool = Query(default=False),
	db: Session = Depends(get_db),
	make_client: ScoringClientFactory = Depends(get_client_factory),
):
	essay = (req.essay or "").strip()
	if not essay or not req.task or req.word_count is None:
		raise HTTPException(status_code=400, detail="Missing required fields for scoring.")

	plan = user_plan(db, req.user_id)
	logger.info("Essay scoring plan check user=%s plan=%s pro_requested=%s", req.user_id, plan, pro)
	if pro and plan != "pro":
		raise HTTPException(status_code=403, detail="Pro scoring is only available for Pro users.")

	question_id = _as_id(req.question_id)
	stored = db.get(WritingTask, question_id) if question_id else None
	prompt_text, min_words = resolve_canonical_task(
		stored.prompt if stored else None,
		req.question,
		stored.min_words if stored else None,
		req.min_words,
		req.task,
	)

	verdict = check_essay(essay, prompt_text)
	if verdict is not None:
		logger.info("Essay rejected before scoring: %s", verdict.reason)
		score = rejected_writing_score(verdict)
		return {**score.model_dump(), "computed_overall": score.computed_overall, "modelUsed": "guard-no-content", "plan": plan}

	model = pick_model(
		pro,
		force_pro=settings.ai_pro_mode,
		free_model=settings.gemini_model_free,
		pro_model=settings.gemini_model_pro,
	)
	prompt = build_writing_prompt(
		essay=essay,
		task=req.task,
		module=req.mode,
		question=prompt_text,
		min_words=min_words,
		word_count=req.word_count,
		task_id=question_id,
		task_type=req.task_type or (stored.task_type if stored else None),
		long_feedback=model == settings.gemini_model_pro,
	)
	client = open_client(make_client)
	try:
		raw = await client.generate(prompt, model=model)
		score = parse_writing_score(raw)
	except (GeminiError, ScoringError) as e:
		logger.error("Essay scoring failed with %s: %s", model, e)
		raise HTTPException(status_code=502, detail=f"Failed to score essay: {e}")
	finally:
		await client.aclose()

	return {**score.model_dump(), "computed_overall": score.computed_overall, "modelUsed": model, "plan": plan}


# ============================================================================
# ATTEMPTS
# ============================================================================

@router.post("/attempts")
async def save_attempt(req: SaveAttemptRequest, db: Session = Depends(get_db)):
	score = unwrap_score_json(req.score_json)
	subscores = {
		"task_response": req.task_response if req.task_response is not None else _number_or_none(score.get("taskResponse")),
		"coherence": req.coherence if req.coherence is not None else _number_or_none(score.get("coherence")),
		"lexical": req.lexical if req.lexical is not None else _number_or_none(score.get("lexical")),
		"grammar": req.grammar if req.grammar is not None else _number_or_none(score.get("grammar")),
	}
	overall = req.overall_band if req.overall_band is not None else derive_essay_overall({"score_json": score})
	if overall is None:
		overall = overall_from(subscores.values())
	row = EssayAttempt(
		user_id=req.user_id,
		question_id=_as_id(req.question_id),
		question_text=req.question_text,
		module=req.module,
		task=req.task,
		essay_text=req.essay_text if req.essay_text is not None else req.essay,
		word_count=req.word_count,
		is_pro=req.is_pro,
		**subscores,
		overall_band=overall,
		score_json=req.score_json,
	)
	try:
		db.add(row)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to save essay attempt")
		raise HTTPException(status_code=500, detail="Failed to save attempt")
	return {"ok": True, "id": row.id}


@router.get("/attempts")
async def list_attempts(user_id: Optional[str] = Query(default=None, alias="userId"), db: Session = Depends(get_db)):
	query = db.query(EssayAttempt)
	if user_id:
		query = query.filter(EssayAttempt.user_id == user_id)
	rows = query.order_by(EssayAttempt.created_at.desc()).all()
	return {"attempts": [essay_to_dict(r) for r in rows]}


@router.get("/attempts/{attempt_id}")
async def get_attempt(attempt_id: str, db: Session = Depends(get_db)):
	row = db.get(EssayAttempt, attempt_id)
	if row is None:
		raise HTTPException(status_code=404, detail="Not found")
	return {"attempt": essay_to_dict(row)}


# ============================================================================
# DRAFTS
# ============================================================================

@router.post("/drafts")
async def save_draft(req: SaveDraftRequest, db: Session = Depends(get_db)):
	question_id = _as_id(req.question_id)
	if not req.user_id or not question_id:
		raise HTTPException(status_code=400, detail="Missing userId or questionId")
	row = db.query(EssayDraft).filter(EssayDraft.user_id == req.user_id, EssayDraft.question_id == question_id).first()
	if row is None:
		row = EssayDraft(user_id=req.user_id, question_id=question_id)
	row.mode = req.mode
	row.task = req.task
	row.essay_text = req.essay
	try:
		db.add(row)
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Failed to save draft")
		raise HTTPException(status_code=500, detail="Failed to save draft")
	return {"id": row.id, "updatedAt": row.updated_at}


@router.get("/drafts")
async def get_draft(
	user_id: Optional[str] = Query(default=None, alias="userId"),
	question_id: Optional[str] = Query(default=None, alias="questionId"),
	db: Session = Depends(get_db),
):
	if not user_id or not question_id:
		raise HTTPException(status_code=400, detail="Missing userId or questionId")
	row = (
		db.query(EssayDraft)
		.filter(EssayDraft.user_id == user_id, EssayDraft.question_id == question_id)
		.order_by(EssayDraft.updated_at.desc())
		.first()
	)
	if row is None:
		return {"draft": None}
	return {
		"draft": {
			"id": row.id,
			"questionId": row.question_id,
			"essay": row.essay_text,
			"mode": row.mode,
			"task": row.task,
			"updatedAt": row.updated_at,
		}
	}


# ============================================================================
# TASKS AND PROGRESS
# ============================================================================

@router.get("/writing-tasks")
async def list_writing_tasks(
	task_type: Optional[str] = Query(default=None),
	module: Optional[str] = Query(default=None),
	db: Session = Depends(get_db),
):
	query = db.query(WritingTask).filter(WritingTask.is_active.is_(True))
	if task_type:
		query = query.filter(WritingTask.task_type == task_type)
	if module:
		query = query.filter(WritingTask.module == module)
	rows = query.order_by(WritingTask.created_at.asc()).all()
	return {"tasks": [task_to_dict(r) for r in rows]}


@router.get("/progress/writing")
async def writing_progress(user_id: Optional[str] = Query(default=None, alias="userId"), db: Session = Depends(get_db)):
	if not user_id:
		raise HTTPException(status_code=400, detail="Missing userId")
	rows = (
		db.query(EssayAttempt)
		.filter(EssayAttempt.user_id == user_id)
		.order_by(EssayAttempt.created_at.desc())
		.all()
	)
	attempts = [normalize_essay_row(r) for r in rows]
	plan = user_plan(db, user_id)
	report = summarize(attempts, "writing", include_insights=plan == "pro")
	return {"plan": plan, **report.model_dump()}
