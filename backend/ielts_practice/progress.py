"""
Progress analytics over stored essay and speaking attempts.

Rows are normalized into ``ScoredAttempt`` first, because legacy rows keep the
overall band in different places (a top-level ``overall_band`` column,
``score_json.overall``, ``score_json.overall_band``) and some speaking rows
wrap the record as ``{"score": {...}}``. Every statistic below works on the
normalized form only and expects attempts newest first.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from .bands import clamp_band, is_number, overall_from, round_half
from .schemas import SPEAKING_CRITERIA, WRITING_CRITERIA

Kind = Literal["writing", "speaking"]

WRITING_CATEGORIES = ("academic_task1", "academic_task2", "general_task1", "general_task2")
SPEAKING_PARTS = ("part1", "part2", "part3")

# Column names on EssayAttempt for each writing criterion
_WRITING_COLUMNS = {"taskResponse": "task_response", "coherence": "coherence", "lexical": "lexical", "grammar": "grammar"}

INSIGHTS_MIN_SCORED = 3
PREDICTION_WINDOW = 5
REALISM_PENALTY = 0.25
TOP_WEAKNESSES = 5

_PART_FROM_QUESTION_RE = re.compile(r"^p([123])-\d+$", re.IGNORECASE)


@dataclass
class ScoredAttempt:
	id: Optional[str] = None
	created_at: Optional[datetime] = None
	overall: Optional[float] = None
	criteria: Dict[str, float] = field(default_factory=dict)
	weaknesses: List[str] = field(default_factory=list)
	module: Optional[str] = None
	task: Optional[str] = None
	part: Optional[str] = None

	@property
	def category(self) -> Optional[str]:
		if self.part:
			return self.part
		if self.module and self.task:
			return f"{self.module}_{self.task}"
		return None


class Snapshot(BaseModel):
	total_attempts: int
	scored_attempts: int
	best_overall: Optional[float] = None
	average_overall: Optional[float] = None
	last_overall: Optional[float] = None


class GroupStat(BaseModel):
	count: int = 0
	average: Optional[float] = None


class WeaknessCount(BaseModel):
	label: str
	count: int


class Insights(BaseModel):
	has_enough_data: bool
	weakest_key: Optional[str] = None
	weakest_average: Optional[float] = None
	weighted_band: Optional[float] = None
	predicted_exam_band: Optional[float] = None


class ProgressReport(BaseModel):
	kind: Kind
	summary: Optional[Snapshot] = None
	categories: Dict[str, GroupStat]
	criteria: Dict[str, GroupStat]
	weaknesses: List[WeaknessCount]
	recent: List[Dict[str, Any]]
	insights: Optional[Insights] = None


# ============================================================================
# NORMALIZATION
# ============================================================================

def _get(row: Any, key: str) -> Any:
	if isinstance(row, Mapping):
		return row.get(key)
	return getattr(row, key, None)


def unwrap_score_json(raw: Any) -> Dict[str, Any]:
	if isinstance(raw, str):
		try:
			raw = json.loads(raw)
		except json.JSONDecodeError:
			return {}
	if not isinstance(raw, dict):
		return {}
	inner = raw.get("score")
	if isinstance(inner, dict):
		return inner
	return raw


def _number(value: Any) -> Optional[float]:
	return float(value) if is_number(value) else None


def _first_number(*values: Any) -> Optional[float]:
	for v in values:
		n = _number(v)
		if n is not None:
			return n
	return None


def _weakness_list(score: Mapping[str, Any]) -> List[str]:
	raw = score.get("weaknesses")
	if not isinstance(raw, list):
		return []
	out = []
	for w in raw:
		label = str(w).strip()
		if label:
			out.append(label)
	return out


def part_from_question_id(question_id: Optional[str]) -> Optional[str]:
	if not question_id:
		return None
	m = _PART_FROM_QUESTION_RE.match(question_id)
	return f"part{m.group(1)}" if m else None


def derive_essay_overall(row: Any) -> Optional[float]:
	score = unwrap_score_json(_get(row, "score_json"))
	return _first_number(score.get("overall"), score.get("overall_band"), _get(row, "overall_band"))


def derive_speaking_overall(row: Any) -> Optional[float]:
	score = unwrap_score_json(_get(row, "score_json"))
	return _first_number(score.get("overall_band"), _get(row, "overall_band"), score.get("overall"))


def normalize_essay_row(row: Any) -> ScoredAttempt:
	score = unwrap_score_json(_get(row, "score_json"))
	criteria: Dict[str, float] = {}
	for key in WRITING_CRITERIA:
		value = _first_number(score.get(key), _get(row, _WRITING_COLUMNS[key]))
		if value is not None:
			criteria[key] = value
	overall = derive_essay_overall(row)
	if overall is None:
		overall = overall_from(criteria.values())
	module = _get(row, "module")
	task = _get(row, "task")
	return ScoredAttempt(
		id=_get(row, "id"),
		created_at=_get(row, "created_at"),
		overall=overall,
		criteria=criteria,
		weaknesses=_weakness_list(score),
		module=module if module in ("academic", "general") else None,
		task=task if task in ("task1", "task2") else None,
	)


def normalize_speaking_row(row: Any) -> ScoredAttempt:
	score = unwrap_score_json(_get(row, "score_json"))
	criteria: Dict[str, float] = {}
	for key in SPEAKING_CRITERIA:
		value = _number(score.get(key))
		if value is not None:
			criteria[key] = value
	overall = derive_speaking_overall(row)
	if overall is None:
		overall = overall_from(criteria.values())
	part = _get(row, "part")
	if part not in SPEAKING_PARTS:
		part = score.get("part") if score.get("part") in SPEAKING_PARTS else part_from_question_id(_get(row, "question_id"))
	return ScoredAttempt(
		id=_get(row, "id"),
		created_at=_get(row, "created_at"),
		overall=overall,
		criteria=criteria,
		weaknesses=_weakness_list(score),
		part=part,
	)


# ============================================================================
# STATISTICS
# ============================================================================

def _mean(values: Sequence[float]) -> Optional[float]:
	return sum(values) / len(values) if values else None


def _scored(attempts: Sequence[ScoredAttempt]) -> List[float]:
	return [a.overall for a in attempts if a.overall is not None]


def snapshot(attempts: Sequence[ScoredAttempt]) -> Optional[Snapshot]:
	if not attempts:
		return None
	scores = _scored(attempts)
	if not scores:
		return Snapshot(total_attempts=len(attempts), scored_attempts=0)
	return Snapshot(
		total_attempts=len(attempts),
		scored_attempts=len(scores),
		best_overall=max(scores),
		average_overall=_mean(scores),
		# newest first, so the first scored attempt is the latest result
		last_overall=scores[0],
	)


def category_breakdown(attempts: Sequence[ScoredAttempt], categories: Sequence[str]) -> Dict[str, GroupStat]:
	buckets: Dict[str, List[float]] = {c: [] for c in categories}
	for a in attempts:
		if a.overall is None or a.category not in buckets:
			continue
		buckets[a.category].append(a.overall)
	return {c: GroupStat(count=len(v), average=_mean(v)) for c, v in buckets.items()}


def criterion_breakdown(attempts: Sequence[ScoredAttempt], criteria: Sequence[str]) -> Dict[str, GroupStat]:
	buckets: Dict[str, List[float]] = {c: [] for c in criteria}
	for a in attempts:
		for c in criteria:
			if c in a.criteria:
				buckets[c].append(a.criteria[c])
	return {c: GroupStat(count=len(v), average=_mean(v)) for c, v in buckets.items()}


def attempt_weight(attempt: ScoredAttempt, kind: Kind) -> float:
	"""Harder categories count more towards the weighted band."""
	weight = 1.0
	if kind == "writing":
		if attempt.task == "task2":
			weight += 0.3
		if attempt.module == "academic":
			weight += 0.2
	else:
		if attempt.part == "part2":
			weight += 0.2
		elif attempt.part == "part3":
			weight += 0.3
	return weight


def weighted_band(attempts: Sequence[ScoredAttempt], kind: Kind) -> Optional[float]:
	weighted_sum = 0.0
	total_weight = 0.0
	for a in attempts:
		if a.overall is None:
			continue
		w = attempt_weight(a, kind)
		weighted_sum += a.overall * w
		total_weight += w
	return weighted_sum / total_weight if total_weight > 0 else None


def predicted_exam_band(attempts: Sequence[ScoredAttempt]) -> Optional[float]:
	recent = _scored(attempts)[:PREDICTION_WINDOW]
	if not recent:
		return None
	return clamp_band(round_half(_mean(recent) - REALISM_PENALTY))


def weakest_criterion(breakdown: Mapping[str, GroupStat]) -> Optional[Tuple[str, float]]:
	weakest: Optional[Tuple[str, float]] = None
	for key, stat in breakdown.items():
		if stat.count == 0 or stat.average is None:
			continue
		# strict comparison keeps the first-declared criterion on ties
		if weakest is None or stat.average < weakest[1]:
			weakest = (key, stat.average)
	return weakest


def weakness_ranking(attempts: Sequence[ScoredAttempt], limit: int = TOP_WEAKNESSES) -> List[WeaknessCount]:
	counts: Dict[str, int] = {}
	for a in attempts:
		for w in a.weaknesses:
			counts[w] = counts.get(w, 0) + 1
	ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
	return [WeaknessCount(label=label, count=count) for label, count in ranked[:limit]]


def insights(attempts: Sequence[ScoredAttempt], kind: Kind, criteria: Optional[Mapping[str, GroupStat]] = None) -> Optional[Insights]:
	if not attempts:
		return None
	if len(_scored(attempts)) < INSIGHTS_MIN_SCORED:
		return Insights(has_enough_data=False)
	if criteria is None:
		criteria = criterion_breakdown(attempts, WRITING_CRITERIA if kind == "writing" else SPEAKING_CRITERIA)
	weakest = weakest_criterion(criteria)
	return Insights(
		has_enough_data=True,
		weakest_key=weakest[0] if weakest else None,
		weakest_average=weakest[1] if weakest else None,
		weighted_band=weighted_band(attempts, kind),
		predicted_exam_band=predicted_exam_band(attempts),
	)


def _recent_entry(a: ScoredAttempt) -> Dict[str, Any]:
	return {
		"id": a.id,
		"created_at": a.created_at,
		"category": a.category,
		"overall": a.overall,
	}


def summarize(attempts: Sequence[ScoredAttempt], kind: Kind, *, include_insights: bool = True) -> ProgressReport:
	if kind == "writing":
		categories, criteria_keys = WRITING_CATEGORIES, WRITING_CRITERIA
	else:
		categories, criteria_keys = SPEAKING_PARTS, SPEAKING_CRITERIA
	criteria = criterion_breakdown(attempts, criteria_keys)
	return ProgressReport(
		kind=kind,
		summary=snapshot(attempts),
		categories=category_breakdown(attempts, categories),
		criteria=criteria,
		weaknesses=weakness_ranking(attempts),
		recent=[_recent_entry(a) for a in attempts[:PREDICTION_WINDOW]],
		insights=insights(attempts, kind, criteria) if include_insights else None,
	)
