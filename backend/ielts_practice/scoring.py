"""
Examiner prompts and response decoding for IELTS band scoring.

Everything here is pure text handling: the routers own the network call to
the scoring engine and decide what to do with a ``ScoringError``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .schemas import SpeakingScore, WritingScore

FENCE = "```"
UNKNOWN_PROMPT = "Unknown IELTS Writing prompt."


class ScoringError(ValueError):
	"""The scoring engine answered with something that is not a score record."""


# ============================================================================
# MODEL TIER
# ============================================================================

def pick_model(pro_requested: bool, *, force_pro: bool, free_model: str, pro_model: str) -> str:
	if force_pro:
		return pro_model
	if pro_requested:
		return pro_model
	return free_model


# ============================================================================
# PROMPTS
# ============================================================================

def default_min_words(task: Optional[str]) -> int:
	return 150 if task == "task1" else 250


def resolve_canonical_task(
	stored_prompt: Optional[str],
	client_prompt: Optional[str],
	stored_min_words: Optional[int],
	client_min_words: Optional[int],
	task: Optional[str],
) -> tuple[str, int]:
	"""Pick the prompt text and word floor the essay is judged against.

	Stored task rows win over whatever the client sent, so a tampered
	question cannot change the grading context.
	"""
	prompt = (stored_prompt or "").strip() or (client_prompt or "").strip() or UNKNOWN_PROMPT
	if isinstance(stored_min_words, int):
		min_words = stored_min_words
	elif isinstance(client_min_words, int):
		min_words = client_min_words
	else:
		min_words = default_min_words(task)
	return prompt, min_words


def build_writing_prompt(
	*,
	essay: str,
	task: str,
	module: str,
	question: str,
	min_words: int,
	word_count: int,
	task_id: Optional[str] = None,
	task_type: Optional[str] = None,
	long_feedback: bool = False,
) -> str:
	module_label = "Academic" if module == "academic" else "General Training"
	task_number = 1 if task == "task1" else 2
	long_fields = ""
	long_schema = ""
	if long_feedback:
		long_fields = (
			"\nAlso write long-form feedback for advanced learners: long_overall (1-3 paragraphs across all criteria) "
			"and long_taskResponse, long_coherence, long_lexical, long_grammar (1-2 paragraphs each, one criterion only).\n"
		)
		long_schema = (
			',\n    "long_overall": string,\n    "long_taskResponse": string,\n    "long_coherence": string,'
			'\n    "long_lexical": string,\n    "long_grammar": string'
		)
	return f"""
You are a senior IELTS Writing examiner. Score the candidate's Writing Task {task_number} ({module_label}) response
against the official public IELTS band descriptors. Score as on exam day, not as in a generous practice room.

Task metadata:
- taskId: {task_id or "unknown"}
- taskType: {task_type or task or "unknown"}
- module: {module_label}
- minWords: {min_words}

Criteria:
- taskResponse: all parts of the question addressed, clear position, developed and relevant ideas.
- coherence: paragraphing, logical progression, natural use of cohesive devices.
- lexical: range, precision, collocation and register of vocabulary.
- grammar: range of structures and accuracy; frequency and impact of errors.

Feedback must be specific to this essay: name concrete strengths and weaknesses, paraphrase typical errors,
explain why each band was awarded and what would reach the next half band. Penalise under-length responses
that lose development.
{long_fields}
Scoring rules: every band is a multiple of 0.5 between 0 and 9. overall is the mean of the four criteria
rounded to the nearest 0.5.

Return ONLY one JSON object, no markdown, in exactly this shape:
{{
  "taskResponse": number,
  "coherence": number,
  "lexical": number,
  "grammar": number,
  "overall": number,
  "comments": {{
    "overview": string,
    "taskResponse": string,
    "coherence": string,
    "lexical": string,
    "grammar": string,
    "advice": string{long_schema}
  }}
}}

# Essay Question:
{question}

# Candidate Essay:
{essay}

# Word Count: {word_count}
# Min Required: {min_words}
""".strip()


def build_speaking_prompt(
	*,
	transcript: str,
	part: str,
	question_id: Optional[str] = None,
	question_prompt: Optional[str] = None,
	long_feedback: bool = False,
) -> str:
	long_schema = ""
	if long_feedback:
		long_schema = (
			',\n  "long_feedback_overall": string,\n  "long_feedback_fluency_coherence": string,'
			'\n  "long_feedback_lexical_resource": string,\n  "long_feedback_grammar_pronunciation": string'
		)
	return f"""
You are a senior IELTS Speaking examiner. Score the candidate's spoken answer from its transcript against the
official IELTS Speaking band descriptors: fluency_coherence, lexical_resource, grammatical_range_accuracy and
pronunciation. Infer pronunciation from error patterns and phrasing since only the transcript is available.

Part expectations:
- part1: short, natural personal answers.
- part2: a 1-2 minute long turn with a clear structure, developed without interviewer support.
- part3: analytical, abstract answers that build and justify arguments.

Be strict and specific. Quote or paraphrase the answer; do not invent content. Every band is a multiple of 0.5
between 0 and 9 and overall_band is the mean of the four criteria rounded to the nearest 0.5.

Return ONLY one JSON object, no markdown, in exactly this shape:
{{
  "overall_band": number,
  "fluency_coherence": number,
  "lexical_resource": number,
  "grammatical_range_accuracy": number,
  "pronunciation": number,
  "estimated_words": integer,
  "estimated_duration_seconds": number,
  "part": "part1|part2|part3|unknown",
  "band_explanation_overall": string,
  "strengths": [string],
  "weaknesses": [string],
  "improvement_tips": [string]{long_schema}
}}

Exam part: {part or "unknown"}
Question ID (internal): {question_id or "unknown"}
Question: {question_prompt or "unknown"}

TRANSCRIPT BELOW:
{transcript}
""".strip()


# ============================================================================
# RESPONSE DECODING
# ============================================================================

def strip_code_fence(text: str) -> str:
	raw = (text or "").strip()
	if not raw.startswith(FENCE):
		return raw
	newline = raw.find("\n")
	if newline == -1:
		# Single line such as ```{"a": 1}```
		body = raw[len(FENCE):]
		if body.endswith(FENCE):
			body = body[: -len(FENCE)]
		return body.strip()
	end = raw.rfind(FENCE)
	if end > newline:
		return raw[newline + 1:end].strip()
	# Opening fence was never closed
	return raw[newline + 1:].strip()


def parse_score_json(text: str) -> Dict[str, Any]:
	body = strip_code_fence(text)
	try:
		data = json.loads(body)
	except json.JSONDecodeError as e:
		raise ScoringError(f"Scoring engine returned invalid JSON: {e.msg}") from e
	if not isinstance(data, dict):
		raise ScoringError("Scoring engine returned JSON that is not an object")
	return data


def parse_writing_score(text: str) -> WritingScore:
	data = parse_score_json(text)
	try:
		return WritingScore.model_validate(data)
	except ValidationError as e:
		raise ScoringError(f"Scoring engine returned an incomplete writing score ({e.error_count()} errors)") from e


def parse_speaking_score(text: str) -> SpeakingScore:
	data = parse_score_json(text)
	try:
		return SpeakingScore.model_validate(data)
	except ValidationError as e:
		raise ScoringError(f"Scoring engine returned an incomplete speaking score ({e.error_count()} errors)") from e
