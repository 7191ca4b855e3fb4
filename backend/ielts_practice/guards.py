from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from .schemas import SpeakingScore, WritingComments, WritingScore

# Speaking guard thresholds
MIN_SPOKEN_WORDS = 12
MIC_TEST_MAX_WORDS = 70
MIN_UNIQUE_RATIO = 0.35
GUARD_SPEAKING_BAND = 1.0

# Writing guard thresholds
MIN_ESSAY_WORDS = 80
MAX_REPEATED_SENTENCE_RATIO = 0.5
GUARD_WRITING_BAND = 2.0

_URL_RE = re.compile(r"https?://|www\.|\.com\b|\.co\b|\.net\b", re.IGNORECASE)

MIC_TEST_PHRASES: List[str] = [
	"testing testing",
	"test test",
	"this is a test",
	"mic check",
	"microphone check",
	"check check",
	"one two three",
	"can you hear me",
	"is this working",
	"is this thing on",
	"hello hello",
	"sound check",
]

_MIC_TEST_RE = re.compile(r"\b(?:" + "|".join(re.escape(p) for p in MIC_TEST_PHRASES) + r")\b")


@dataclass(frozen=True)
class GuardVerdict:
	reason: str
	message: str
	word_count: int


def normalize(text: str) -> str:
	s = (text or "").lower()
	s = re.sub(r"[^\w\s]", "", s)
	return re.sub(r"\s+", " ", s).strip()


def _unique_ratio(tokens: List[str]) -> float:
	return len(set(tokens)) / len(tokens) if tokens else 0.0


def check_transcript(transcript: str) -> Optional[GuardVerdict]:
	"""Return a rejection for transcripts not worth sending to the examiner model."""
	cleaned = (transcript or "").strip()
	word_count = len(cleaned.split())
	if word_count < MIN_SPOKEN_WORDS:
		return GuardVerdict("too_short", "Not enough speech was detected to assess. Please record a longer answer.", word_count)
	if _URL_RE.search(cleaned):
		return GuardVerdict("contains_url", "The recording looks like invalid or garbled audio. Please record again.", word_count)
	norm = normalize(cleaned)
	if word_count < MIC_TEST_MAX_WORDS and _MIC_TEST_RE.search(norm):
		return GuardVerdict("mic_test", "This sounds like a microphone test rather than an answer to the question.", word_count)
	tokens = norm.split()
	if len(tokens) >= MIN_SPOKEN_WORDS and _unique_ratio(tokens) < MIN_UNIQUE_RATIO:
		return GuardVerdict("repetitive", "The answer mostly repeats the same words, so it cannot be assessed.", word_count)
	return None


def rejected_speaking_score(verdict: GuardVerdict, part: str) -> SpeakingScore:
	b = GUARD_SPEAKING_BAND
	return SpeakingScore(
		overall_band=b,
		fluency_coherence=b,
		lexical_resource=b,
		grammatical_range_accuracy=b,
		pronunciation=b,
		estimated_words=verdict.word_count,
		estimated_duration_seconds=0,
		part=part,
		band_explanation_overall=verdict.message,
		strengths=[],
		weaknesses=["No assessable speech detected."],
		improvement_tips=["Record a clear spoken answer that responds to the question."],
		guard_reason=verdict.reason,
	)


def check_essay(essay: str, prompt: str) -> Optional[GuardVerdict]:
	e = normalize(essay)
	p = normalize(prompt)
	words = e.split()
	if len(words) < MIN_ESSAY_WORDS:
		return GuardVerdict("too_short", f"The response has fewer than {MIN_ESSAY_WORDS} words of content.", len(words))
	if _unique_ratio(words) < MIN_UNIQUE_RATIO:
		return GuardVerdict("repetitive", "The response repeats the same words throughout.", len(words))
	if p and p in e:
		return GuardVerdict("copies_prompt", "The response copies the task prompt.", len(words))
	sentences = [s for s in (normalize(x) for x in re.split(r"[.!?]+", essay or "")) if len(s) > 20]
	if sentences and 1 - len(set(sentences)) / len(sentences) > MAX_REPEATED_SENTENCE_RATIO:
		return GuardVerdict("repeated_sentences", "Most sentences in the response are repeated.", len(words))
	return None


def rejected_writing_score(verdict: GuardVerdict) -> WritingScore:
	b = GUARD_WRITING_BAND
	comments = WritingComments(
		overview=(
			"The response contains no assessable original content. "
			f"{verdict.message} It cannot be meaningfully scored against the IELTS Writing criteria."
		),
		taskResponse="The task is not addressed: no position, ideas or examples are presented.",
		coherence="Coherence and cohesion cannot be assessed without original content.",
		lexical="There is no evidence of vocabulary range beyond repetition.",
		grammar="Grammatical range and accuracy cannot be judged without original sentences.",
		advice=(
			"Write an original response that answers the question directly. Develop ideas with examples, "
			"vary your vocabulary and organise the essay into clear paragraphs."
		),
	)
	return WritingScore(
		taskResponse=b,
		coherence=b,
		lexical=b,
		grammar=b,
		overall=b,
		comments=comments,
		guard_reason=verdict.reason,
	)
