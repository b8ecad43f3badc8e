"""Trend points, benchmark comparison and portfolio roll-ups."""
from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime

from pydantic import BaseModel

from meddpicc.coaching import select_prompts
from meddpicc.models import Assessment, MeddpiccConfig

BENCHMARK_VARIANCE_PCT = 20
DEFAULT_BENCHMARK = 25
COMMON_GAP_LIMIT = 3


class TrendPoint(BaseModel):
    date: datetime
    total_score: int
    pillar_scores: dict[str, int]
    stage: str
    probability: float


class BenchmarkComparison(BaseModel):
    vs_benchmark: dict[str, int]
    recommendations: list[str]


class PillarAverage(BaseModel):
    pillar: str
    average_score: float
    weak_count: int
    common_gaps: list[str] = []


class PortfolioSummary(BaseModel):
    assessment_count: int
    score_distribution: dict[str, int]
    risk_distribution: dict[str, int]
    pillar_analysis: list[PillarAverage]
    completion_rate: float
    average_total_score: float


def track_trend(assessment: Assessment, stage: str, probability: float) -> TrendPoint:
    return TrendPoint(
        date=datetime.now(UTC),
        total_score=assessment.total_score,
        pillar_scores=dict(assessment.pillar_scores),
        stage=stage,
        probability=probability,
    )


def compare_to_benchmark(assessment: Assessment, config: MeddpiccConfig) -> BenchmarkComparison:
    """Per-pillar variance (%) against the configured benchmark score."""
    comparison: dict[str, int] = {}
    recommendations: list[str] = []
    for pillar in config.pillars:
        benchmark = pillar.benchmark or DEFAULT_BENCHMARK
        score = assessment.pillar_scores.get(pillar.id, 0)
        variance = (score - benchmark) / benchmark * 100
        comparison[pillar.id] = round(variance)
        if variance < -BENCHMARK_VARIANCE_PCT:
            recommendations.append(
                f"{pillar.title}: Significantly below benchmark - immediate attention needed"
            )
        elif variance > BENCHMARK_VARIANCE_PCT:
            recommendations.append(f"{pillar.title}: Above benchmark - leverage this strength")
    return BenchmarkComparison(vs_benchmark=comparison, recommendations=recommendations)


def _common_gaps(pillar_id: str, weak: list[Assessment], config: MeddpiccConfig) -> list[str]:
    """Most frequent prompts for this pillar across assessments where it is weak."""
    gaps: Counter[str] = Counter(
        p.prompt
        for a in weak
        for p in select_prompts(a.answers, config)
        if p.pillar == pillar_id
    )
    return [prompt for prompt, _ in gaps.most_common(COMMON_GAP_LIMIT)]


def summarize_portfolio(assessments: list[Assessment], config: MeddpiccConfig) -> PortfolioSummary:
    count = len(assessments)
    levels: Counter[str] = Counter(a.overall_level for a in assessments)
    risks: Counter[str] = Counter(a.risk_level for a in assessments)

    pillar_analysis: list[PillarAverage] = []
    for pillar in config.pillars:
        scores = [a.pillar_scores.get(pillar.id, 0) for a in assessments]
        weak_below = pillar.max_score * 0.6
        weak = [a for a, s in zip(assessments, scores) if s < weak_below]
        pillar_analysis.append(PillarAverage(
            pillar=pillar.id,
            average_score=round(sum(scores) / count, 1) if count else 0.0,
            weak_count=len(weak),
            common_gaps=_common_gaps(pillar.id, weak, config),
        ))

    completed = sum(1 for a in assessments if a.completion_percentage >= config.completion_threshold)
    return PortfolioSummary(
        assessment_count=count,
        score_distribution={lvl: levels.get(lvl, 0) for lvl in ("strong", "moderate", "weak")},
        risk_distribution={lvl: risks.get(lvl, 0) for lvl in ("low", "medium", "high", "critical")},
        pillar_analysis=pillar_analysis,
        completion_rate=round(100 * completed / count, 1) if count else 0.0,
        average_total_score=round(sum(a.total_score for a in assessments) / count, 1) if count else 0.0,
    )
