"""Tests for pillar sums, confidence, risk classification and stage readiness."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from meddpicc.models import Answer, RiskRule
from meddpicc.scorer import (
    classify_risk,
    compute_confidence,
    compute_pillar_scores,
    compute_total_score,
    completion_percentage,
    evaluate_stage_readiness,
    latest_answers,
    overall_level,
    pillar_breakdown,
)


def _scores(store, config):
    return compute_pillar_scores(store.answers(), config)


class TestPillarScores:
    def test_empty(self, store, config):
        scores = _scores(store, config)
        assert scores == {p: 0 for p in config.pillar_ids}
        assert compute_total_score(scores) == 0

    def test_all_yes(self, store, fill, config):
        scores = _scores(fill(store), config)
        assert set(scores.values()) == {40}
        assert compute_total_score(scores) == 320

    def test_all_partial(self, store, fill, config):
        scores = _scores(fill(store, value="partial"), config)
        assert set(scores.values()) == {20}
        assert compute_total_score(scores) == 160

    def test_total_is_sum_of_pillars(self, store, config):
        store.upsert("metrics", "q_metrics_5", "yes")
        store.upsert("metrics", "q_metrics_2", "partial")
        store.upsert("champion", "q_ch_4", "yes")
        store.upsert("competition", "q_co_1", "no")
        scores = _scores(store, config)
        assert scores["metrics"] == 15
        assert scores["champion"] == 10
        assert scores["competition"] == 0
        assert compute_total_score(scores) == sum(scores.values()) == 25

    def test_raising_an_answer_never_lowers_the_total(self, store, config):
        previous = 0
        for p in config.pillars:
            for q in p.questions:
                for value in ("no", "partial", "yes"):
                    store.upsert(p.id, q.id, value)
                    total = compute_total_score(_scores(store, config))
                    assert total >= previous
                    previous = total
        assert previous == 320

    def test_latest_answer_wins(self, config):
        now = datetime.now(UTC)
        older = Answer(pillar="metrics", question_id="q_metrics_5", answer_value="yes", score=12,
                       timestamp=now - timedelta(minutes=5))
        newer = Answer(pillar="metrics", question_id="q_metrics_5", answer_value="no", score=0, timestamp=now)
        assert latest_answers([newer, older])[("metrics", "q_metrics_5")] is newer
        assert compute_pillar_scores([newer, older], config)["metrics"] == 0

    def test_unknown_pillar_ignored(self, config):
        stray = Answer(pillar="budget", question_id="b1", answer_value="yes", score=50)
        assert compute_total_score(compute_pillar_scores([stray], config)) == 0


class TestCompletionAndConfidence:
    def test_empty(self, config):
        assert completion_percentage([], config) == 0.0
        assert compute_confidence([], config) == 0

    def test_half_complete_medium(self, store, fill, config):
        fill(store, pillars={"metrics", "economic_buyer", "decision_criteria", "decision_process"})
        answers = store.answers()
        assert completion_percentage(answers, config) == 50.0
        assert compute_confidence(answers, config) == 33

    def test_full_confidence(self, store, fill, config):
        answers = fill(store, confidence="high").answers()
        assert completion_percentage(answers, config) == 100.0
        assert compute_confidence(answers, config) == 100

    def test_rounds_half_up(self, store, config):
        # 100 * 1/40 = 2.5
        store.upsert("metrics", "q_metrics_1", "yes", "high")
        assert compute_confidence(store.answers(), config) == 3

    def test_mixed_levels(self, store, fill, config):
        fill(store, pillars={"metrics", "economic_buyer", "decision_criteria", "decision_process"},
             confidence="high")
        fill(store, pillars={"paper_process", "implicate_the_pain", "champion", "competition"},
             confidence="low")
        # (100 + 33) / 2 = 66.5
        assert compute_confidence(store.answers(), config) == 67

    def test_no_answers_count_towards_completion(self, store, fill, config):
        answers = fill(store, value="no").answers()
        assert completion_percentage(answers, config) == 100.0


class TestRiskClassification:
    @pytest.mark.parametrize("total, confidence, expected", [
        (0, 0, "critical"),
        (191, 49, "critical"),
        (191, 50, "high"),
        (191, 100, "high"),
        (255, 59, "high"),
        (255, 60, "medium"),
        (255, 70, "medium"),
        (256, 70, "low"),
        (256, 0, "low"),
        (320, 100, "low"),
    ])
    def test_table(self, config, total, confidence, expected):
        assert classify_risk(total, confidence, 100.0, config) == expected

    def test_first_match_wins(self, config):
        custom = config.model_copy(update={"risk_rules": [
            RiskRule(level="medium", below_score=300),
            RiskRule(level="critical", below_score=300),
            RiskRule(level="low"),
        ]})
        assert classify_risk(10, 0, 0.0, custom) == "medium"

    def test_completion_condition(self, config):
        custom = config.model_copy(update={"risk_rules": [
            RiskRule(level="high", below_completion=50.0),
            RiskRule(level="low"),
        ]})
        assert classify_risk(320, 100, 49.9, custom) == "high"
        assert classify_risk(320, 100, 50.0, custom) == "low"

    def test_unvalidated_table_without_catch_all(self, config):
        custom = config.model_copy(update={"risk_rules": [RiskRule(level="high", below_score=10)]})
        with pytest.raises(ValueError):
            classify_risk(100, 100, 100.0, custom)


class TestLevels:
    @pytest.mark.parametrize("total, expected", [
        (320, "strong"), (256, "strong"), (255, "moderate"), (192, "moderate"), (191, "weak"), (0, "weak"),
    ])
    def test_overall_level(self, config, total, expected):
        assert overall_level(total, config) == expected

    def test_breakdown(self, store, config):
        for qid in ("q_metrics_1", "q_metrics_3", "q_metrics_5"):
            store.upsert("metrics", qid, "yes")
        for q in config.pillar("champion").questions:
            store.upsert("champion", q.id, "yes")
        rows = {r.pillar: r for r in pillar_breakdown(_scores(store, config), config)}
        assert len(rows) == 8
        assert rows["metrics"].score == 24
        assert rows["metrics"].percentage == 60.0
        assert rows["metrics"].level == "moderate"
        assert rows["champion"].level == "strong"
        assert rows["competition"].level == "weak"


class TestStageReadiness:
    def test_empty_is_not_ready(self, store, config):
        assert evaluate_stage_readiness(_scores(store, config), config) == {
            "prospect": False, "engage": False, "acquire": False, "keep": False,
        }

    def test_all_yes_ready_everywhere(self, store, fill, config):
        readiness = evaluate_stage_readiness(_scores(fill(store), config), config)
        assert all(readiness.values())

    def test_prospect_only(self, store, fill, config):
        fill(store, pillars={"metrics", "implicate_the_pain"}, value="partial")
        readiness = evaluate_stage_readiness(_scores(store, config), config)
        assert readiness["prospect"] is True
        assert readiness["engage"] is False

    def test_acquire_needs_sixty_percent(self, store, fill, config):
        fill(store, value="partial")
        readiness = evaluate_stage_readiness(_scores(store, config), config)
        assert readiness["engage"] is True
        assert readiness["acquire"] is False
        assert readiness["keep"] is False

    def test_later_stage_implies_earlier(self, store, fill, config):
        fill(store, pillars={"metrics", "implicate_the_pain", "economic_buyer", "champion"})
        readiness = evaluate_stage_readiness(_scores(store, config), config)
        order = [s.id for s in config.stages]
        for earlier, later in zip(order, order[1:]):
            if readiness[later]:
                assert readiness[earlier]
