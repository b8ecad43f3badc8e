from __future__ import annotations

from meddpicc.analytics import compare_to_benchmark, summarize_portfolio, track_trend
from meddpicc.assessment import recompute
from meddpicc.store import AnswerStore


class TestBenchmark:
    def test_empty_is_far_below(self, store, config):
        result = compare_to_benchmark(recompute(store, config), config)
        assert set(result.vs_benchmark.values()) == {-100}
        assert len(result.recommendations) == 8
        assert all("Significantly below" in r for r in result.recommendations)

    def test_full_marks(self, store, fill, config):
        result = compare_to_benchmark(recompute(fill(store), config), config)
        # metrics benchmark 32, implicate_the_pain benchmark 35
        assert result.vs_benchmark["metrics"] == 25
        assert result.vs_benchmark["implicate_the_pain"] == 14
        assert len(result.recommendations) == 7
        assert all("Above benchmark" in r for r in result.recommendations)


def test_track_trend(store, fill, config):
    a = recompute(fill(store, pillars={"metrics"}), config)
    point = track_trend(a, stage="engage", probability=0.4)
    assert point.total_score == 40
    assert point.pillar_scores["metrics"] == 40
    assert point.stage == "engage"


class TestPortfolio:
    def test_empty(self, config):
        summary = summarize_portfolio([], config)
        assert summary.assessment_count == 0
        assert summary.completion_rate == 0.0
        assert summary.average_total_score == 0.0

    def test_mixed(self, fill, config):
        strong = recompute(fill(AnswerStore.create("a", config)), config)
        empty = recompute(AnswerStore.create("b", config), config)
        summary = summarize_portfolio([strong, empty], config)
        assert summary.assessment_count == 2
        assert summary.score_distribution == {"strong": 1, "moderate": 0, "weak": 1}
        assert summary.risk_distribution == {"low": 1, "medium": 0, "high": 0, "critical": 1}
        assert summary.completion_rate == 50.0
        assert summary.average_total_score == 160.0
        for row in summary.pillar_analysis:
            assert row.average_score == 20.0
            assert row.weak_count == 1
            assert row.common_gaps == []

    def test_common_gaps_ranked_by_frequency(self, fill, config):
        no_a = recompute(fill(AnswerStore.create("a", config), pillars={"metrics"}, value="no"), config)
        no_b = recompute(fill(AnswerStore.create("b", config), pillars={"metrics"}, value="no"), config)
        partial = recompute(fill(AnswerStore.create("c", config), pillars={"metrics"}, value="partial"), config)
        strong = recompute(fill(AnswerStore.create("d", config)), config)
        summary = summarize_portfolio([no_a, no_b, partial, strong], config)
        metrics = next(r for r in summary.pillar_analysis if r.pillar == "metrics")
        assert metrics.weak_count == 3
        assert metrics.common_gaps == [
            "Establish a metrics baseline with the customer before the next call",
            "Conduct deeper discovery to understand and quantify business metrics",
        ]
        champion = next(r for r in summary.pillar_analysis if r.pillar == "champion")
        assert champion.weak_count == 3
        assert champion.common_gaps == []
