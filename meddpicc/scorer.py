"""Scoring engine: pillar sums, confidence, risk and stage readiness.

All functions here are pure and deterministic over ``(answers, config)``:

- **Pillar score**: sum of the latest answer score per question in the
  pillar; unanswered questions contribute 0.
- **Confidence**: mean confidence weight over answered questions, scaled by
  the completion ratio so a half-finished assessment cannot look certain.
- **Risk**: first matching row of the configured decision table.
- **Stage readiness**: every pillar listed for a stage must reach the stage's
  fraction of its maximum.
"""
from __future__ import annotations

import logging
from typing import Iterable

from meddpicc.models import Answer, MeddpiccConfig, PillarBreakdown, RiskLevel, ScoreLevel

log = logging.getLogger(__name__)

PILLAR_STRONG_PCT = 80.0
PILLAR_MODERATE_PCT = 60.0


def latest_answers(answers: Iterable[Answer]) -> dict[tuple[str, str], Answer]:
    """Collapse to the newest answer per (pillar, question_id)."""
    latest: dict[tuple[str, str], Answer] = {}
    for a in answers:
        key = (a.pillar, a.question_id)
        current = latest.get(key)
        if current is None or a.timestamp >= current.timestamp:
            latest[key] = a
    return latest


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


def compute_pillar_scores(answers: Iterable[Answer], config: MeddpiccConfig) -> dict[str, int]:
    scores = {p.id: 0 for p in config.pillars}
    for (pillar, question_id), a in latest_answers(answers).items():
        if pillar not in scores:
            log.debug("Ignoring answer for unknown pillar %s/%s", pillar, question_id)
            continue
        scores[pillar] += a.score
    return scores


def compute_total_score(pillar_scores: dict[str, int]) -> int:
    return sum(pillar_scores.values())


def pillar_fraction(pillar_id: str, pillar_scores: dict[str, int], config: MeddpiccConfig) -> float:
    pillar = config.pillar(pillar_id)
    if pillar is None or pillar.max_score == 0:
        return 0.0
    return pillar_scores.get(pillar_id, 0) / pillar.max_score


def pillar_level(percentage: float) -> ScoreLevel:
    if percentage >= PILLAR_STRONG_PCT:
        return "strong"
    if percentage >= PILLAR_MODERATE_PCT:
        return "moderate"
    return "weak"


def overall_level(total_score: int, config: MeddpiccConfig) -> ScoreLevel:
    thresholds = config.level_thresholds
    if total_score >= thresholds.strong:
        return "strong"
    if total_score >= thresholds.moderate:
        return "moderate"
    return "weak"


def pillar_breakdown(pillar_scores: dict[str, int], config: MeddpiccConfig) -> list[PillarBreakdown]:
    rows: list[PillarBreakdown] = []
    for p in config.pillars:
        score = pillar_scores.get(p.id, 0)
        pct = round(100 * score / p.max_score, 1) if p.max_score else 0.0
        rows.append(PillarBreakdown(
            pillar=p.id, title=p.title, score=score, max_score=p.max_score,
            percentage=pct, level=pillar_level(pct),
        ))
    return rows


# ---------------------------------------------------------------------------
# Completion and confidence
# ---------------------------------------------------------------------------


def answered_count(answers: Iterable[Answer], config: MeddpiccConfig) -> int:
    known = {(p.id, q.id) for p in config.pillars for q in p.questions}
    return sum(1 for key in latest_answers(answers) if key in known)


def completion_percentage(answers: Iterable[Answer], config: MeddpiccConfig) -> float:
    total = config.total_questions
    if total == 0:
        return 0.0
    return round(100 * answered_count(answers, config) / total, 1)


def compute_confidence(answers: Iterable[Answer], config: MeddpiccConfig) -> int:
    latest = [a for key, a in latest_answers(answers).items() if config.pillar(key[0]) is not None]
    if not latest or config.total_questions == 0:
        return 0
    weights = config.confidence_weights
    mean_weight = sum(weights[a.confidence_level] for a in latest) / len(latest)
    ratio = len(latest) / config.total_questions
    raw = mean_weight * ratio
    return max(0, min(100, int(raw + 0.5)))  # half-up


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_risk(
    total_score: int, confidence_score: int, completion: float, config: MeddpiccConfig,
) -> RiskLevel:
    for rule in config.risk_rules:
        if rule.below_score is not None and not total_score < rule.below_score:
            continue
        if rule.below_confidence is not None and not confidence_score < rule.below_confidence:
            continue
        if rule.below_completion is not None and not completion < rule.below_completion:
            continue
        return rule.level
    # validate_config guarantees a catch-all, so this is only reachable with an unvalidated config
    raise ValueError("Risk table has no catch-all rule")


def evaluate_stage_readiness(pillar_scores: dict[str, int], config: MeddpiccConfig) -> dict[str, bool]:
    readiness: dict[str, bool] = {}
    for stage in config.stages:
        readiness[stage.id] = all(
            pillar_fraction(p, pillar_scores, config) >= stage.min_fraction
            for p in stage.pillars
        )
    return readiness
