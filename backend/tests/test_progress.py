import json
from datetime import datetime

import pytest

from ielts_practice.progress import (
	ScoredAttempt,
	category_breakdown,
	criterion_breakdown,
	insights,
	normalize_essay_row,
	normalize_speaking_row,
	part_from_question_id,
	predicted_exam_band,
	snapshot,
	summarize,
	weakest_criterion,
	weakness_ranking,
	weighted_band,
	WRITING_CATEGORIES,
)
from ielts_practice.schemas import SPEAKING_CRITERIA, WRITING_CRITERIA


def test_no_attempts_gives_no_summary():
	assert snapshot([]) is None
	assert insights([], "writing") is None
	assert weighted_band([], "writing") is None
	assert predicted_exam_band([]) is None


def test_snapshot_newest_first():
	attempts = [ScoredAttempt(overall=7.0), ScoredAttempt(overall=6.5), ScoredAttempt(overall=8.0)]
	s = snapshot(attempts)
	assert s.total_attempts == 3
	assert s.scored_attempts == 3
	assert s.best_overall == 8.0
	assert s.average_overall == pytest.approx(7.1666666, rel=1e-6)
	assert s.last_overall == 7.0


def test_snapshot_skips_unscored():
	s = snapshot([ScoredAttempt(), ScoredAttempt(overall=6.0)])
	assert s.total_attempts == 2
	assert s.scored_attempts == 1
	assert s.last_overall == 6.0

	empty = snapshot([ScoredAttempt()])
	assert empty.scored_attempts == 0
	assert empty.average_overall is None


def test_weighted_band_single_attempt_is_its_overall():
	attempt = ScoredAttempt(overall=6.0, module="academic", task="task2")
	assert weighted_band([attempt], "writing") == 6.0


def test_weighted_band_favours_harder_categories():
	attempts = [
		ScoredAttempt(overall=8.0, module="academic", task="task2"),
		ScoredAttempt(overall=6.0, module="general", task="task1"),
	]
	assert weighted_band(attempts, "writing") == pytest.approx((8.0 * 1.5 + 6.0) / 2.5)

	spoken = [ScoredAttempt(overall=7.0, part="part3"), ScoredAttempt(overall=5.0, part="part1")]
	assert weighted_band(spoken, "speaking") == pytest.approx((7.0 * 1.3 + 5.0) / 2.3)


def test_predicted_exam_band():
	attempts = [ScoredAttempt(overall=v) for v in (7, 7, 6.5, 7, 6.5)]
	assert predicted_exam_band(attempts) == 6.5


def test_predicted_exam_band_uses_five_most_recent_and_clamps():
	attempts = [ScoredAttempt(overall=v) for v in (9, 9, 9, 9, 9, 1, 1)]
	assert predicted_exam_band(attempts) == 9.0
	assert predicted_exam_band([ScoredAttempt(overall=0.0)]) == 0.0


def test_category_breakdown_reports_empty_groups():
	attempts = [
		ScoredAttempt(overall=6.0, module="academic", task="task2"),
		ScoredAttempt(overall=7.0, module="academic", task="task2"),
		ScoredAttempt(overall=5.0, module="general", task="task1"),
		ScoredAttempt(module="general", task="task2"),
	]
	out = category_breakdown(attempts, WRITING_CATEGORIES)
	assert out["academic_task2"].count == 2
	assert out["academic_task2"].average == 6.5
	assert out["general_task1"].average == 5.0
	assert out["general_task2"].count == 0
	assert out["general_task2"].average is None
	assert out["academic_task1"].average is None


def test_criterion_breakdown_ignores_missing_values():
	attempts = [
		ScoredAttempt(criteria={"taskResponse": 6.0, "grammar": 5.0}),
		ScoredAttempt(criteria={"taskResponse": 7.0}),
	]
	out = criterion_breakdown(attempts, WRITING_CRITERIA)
	assert out["taskResponse"].count == 2
	assert out["taskResponse"].average == 6.5
	assert out["grammar"].count == 1
	assert out["coherence"].average is None


def test_weakest_criterion_first_declared_wins_ties():
	attempts = [ScoredAttempt(criteria={"taskResponse": 7.0, "coherence": 5.5, "lexical": 5.5, "grammar": 6.0})]
	out = criterion_breakdown(attempts, WRITING_CRITERIA)
	assert weakest_criterion(out) == ("coherence", 5.5)
	assert weakest_criterion(criterion_breakdown([], WRITING_CRITERIA)) is None


def test_weakness_ranking():
	attempts = [
		ScoredAttempt(weaknesses=["A", "B"]),
		ScoredAttempt(weaknesses=["A"]),
		ScoredAttempt(weaknesses=["A", "B", "C"]),
	]
	ranked = weakness_ranking(attempts)
	assert [(w.label, w.count) for w in ranked] == [("A", 3), ("B", 2), ("C", 1)]


def test_weakness_ranking_top_five():
	attempts = [ScoredAttempt(weaknesses=[str(i) for i in range(8)])]
	assert len(weakness_ranking(attempts)) == 5


def test_insights_need_three_scored_attempts():
	two = [ScoredAttempt(overall=6.0), ScoredAttempt(overall=6.5), ScoredAttempt()]
	assert insights(two, "writing").has_enough_data is False

	three = [
		ScoredAttempt(overall=7.0, criteria={"fluency_coherence": 7.0, "pronunciation": 7.0}, part="part2"),
		ScoredAttempt(overall=6.5, criteria={"fluency_coherence": 6.5, "pronunciation": 7.0}, part="part1"),
		ScoredAttempt(overall=6.0, criteria={"fluency_coherence": 6.0, "pronunciation": 6.5}, part="part3"),
	]
	out = insights(three, "speaking")
	assert out.has_enough_data is True
	assert out.weakest_key == "fluency_coherence"
	assert out.weakest_average == pytest.approx(6.5)
	assert out.predicted_exam_band == 6.5
	assert out.weighted_band == pytest.approx((7.0 * 1.2 + 6.5 + 6.0 * 1.3) / 3.5)


def test_normalize_essay_row_prefers_stored_overall():
	row = {
		"id": "a1",
		"module": "academic",
		"task": "task2",
		"overall_band": 5.0,
		"score_json": {"overall": 6.0, "taskResponse": 7.0, "coherence": 7.0, "lexical": 7.0, "grammar": 7.0},
	}
	attempt = normalize_essay_row(row)
	assert attempt.overall == 6.0
	assert attempt.category == "academic_task2"
	assert attempt.criteria["grammar"] == 7.0


def test_normalize_essay_row_falls_back_to_columns_and_mean():
	row = {"module": "general", "task": "task1", "task_response": 6.0, "coherence": 6.0, "lexical": 6.5, "grammar": 6.5}
	attempt = normalize_essay_row(row)
	assert attempt.overall == 6.5
	assert set(attempt.criteria) == set(WRITING_CRITERIA)

	assert normalize_essay_row({"score_json": None}).overall is None


def test_normalize_speaking_row_handles_legacy_shapes():
	wrapped = {
		"question_id": "p3-9",
		"score_json": {"score": {"overall_band": 6.0, "pronunciation": 6.0, "weaknesses": [" Pace ", ""]}},
	}
	attempt = normalize_speaking_row(wrapped)
	assert attempt.overall == 6.0
	assert attempt.part == "part3"
	assert attempt.weaknesses == ["Pace"]

	as_text = {"part": "part1", "overall_band": 5.5, "score_json": json.dumps({"fluency_coherence": 5.0})}
	attempt = normalize_speaking_row(as_text)
	assert attempt.overall == 5.5
	assert attempt.criteria == {"fluency_coherence": 5.0}

	guarded = {"part": "part2", "overall_band": 1.0, "score_json": {"reason": "no_speech_detected"}}
	assert normalize_speaking_row(guarded).overall == 1.0


def test_part_from_question_id():
	assert part_from_question_id("p2-14") == "part2"
	assert part_from_question_id("P1-1") == "part1"
	assert part_from_question_id("q-1") is None
	assert part_from_question_id(None) is None


def test_summarize_writing():
	now = datetime(2026, 1, 1)
	attempts = [
		ScoredAttempt(id=str(i), created_at=now, overall=v, module="academic", task="task2") for i, v in enumerate([7.0, 6.5, 6.0])
	]
	report = summarize(attempts, "writing", include_insights=False)
	assert report.summary.best_overall == 7.0
	assert report.insights is None
	assert set(report.categories) == set(WRITING_CATEGORIES)
	assert set(report.criteria) == set(WRITING_CRITERIA)
	assert report.recent[0]["id"] == "0"

	speaking = summarize([], "speaking")
	assert speaking.summary is None
	assert set(speaking.criteria) == set(SPEAKING_CRITERIA)
	assert speaking.categories["part2"].average is None
