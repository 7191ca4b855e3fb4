from ielts_practice.guards import (
	GUARD_SPEAKING_BAND,
	check_essay,
	check_transcript,
	rejected_speaking_score,
	rejected_writing_score,
)

from conftest import ESSAY, TRANSCRIPT


def test_short_transcript_is_rejected():
	verdict = check_transcript("I like my home town")
	assert verdict.reason == "too_short"
	assert verdict.word_count == 5


def test_url_transcript_is_rejected():
	verdict = check_transcript(
		"Thanks for watching and please visit www.example.com for more videos about learning English today"
	)
	assert verdict.reason == "contains_url"


def test_mic_test_is_rejected_only_when_short():
	verdict = check_transcript("hello hello testing testing can you hear me now I am just checking the microphone")
	assert verdict.reason == "mic_test"

	long_answer = TRANSCRIPT + (
		" Last summer my cousin visited from abroad, and we spent an entire afternoon there feeding ducks,"
		" talking about our childhood and eating sandwiches we had prepared together. Honestly, can you hear me"
		" describing it with real enthusiasm?"
	)
	assert len(long_answer.split()) >= 70
	assert check_transcript(long_answer) is None


def test_repetitive_transcript_is_rejected():
	verdict = check_transcript("good " * 20)
	assert verdict.reason == "repetitive"


def test_real_answer_passes():
	assert check_transcript(TRANSCRIPT) is None


def test_rejected_speaking_score_is_fixed_low_band():
	score = rejected_speaking_score(check_transcript("um"), "part2")
	assert score.overall_band == GUARD_SPEAKING_BAND
	assert score.pronunciation == GUARD_SPEAKING_BAND
	assert score.part == "part2"
	assert score.model_dump()["guard_reason"] == "too_short"


def test_essay_guard():
	assert check_essay(ESSAY, "Discuss both views.") is None
	assert check_essay("I agree with this.", "Discuss both views.").reason == "too_short"
	assert check_essay("education " * 100, "").reason == "repetitive"

	prompt = "Some people believe university education should be free for everyone"
	assert check_essay(prompt + ". " + ESSAY, prompt).reason == "copies_prompt"


def test_rejected_writing_score():
	score = rejected_writing_score(check_essay("Too short.", ""))
	assert score.overall == 2.0
	assert score.computed_overall == 2.0
	assert "fewer than 80 words" in score.comments.overview


def test_mic_test_phrases_match_whole_words():
	answer = (
		"My latest test at school was in chemistry and I studied every evening for two weeks with my friends, "
		"so I felt confident and calm when I finally sat the exam."
	)
	assert check_transcript(answer) is None

	answer = (
		"I once entered a singing contest testing my confidence in front of three hundred people, and although "
		"my voice shook at first I kept going until the very last note."
	)
	assert check_transcript(answer) is None

	verdict = check_transcript("okay test test is the recording running now because I want to start my answer soon")
	assert verdict.reason == "mic_test"
