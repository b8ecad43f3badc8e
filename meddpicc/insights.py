"""Rule-based insight generation.

Rules are evaluated per pillar in configuration order, then across pillars.
``generate_insights`` returns every insight that fired; presentation layers
call ``rank_insights`` to order by priority and cut to the top N.
"""
from __future__ import annotations

from meddpicc.coaching import prompt_for
from meddpicc.models import PRIORITY_ORDER, Answer, Assessment, Insight, MeddpiccConfig, Pillar
from meddpicc.scorer import latest_answers, pillar_fraction

WEAKNESS_BELOW = 0.5
STRENGTH_AT = 0.9
COMPETITIVE_STRENGTH_AT = 0.8
CONCERN_BELOW = 0.4
LOW_CONFIDENCE_BELOW = 60

ECONOMIC_BUYER = "economic_buyer"
CHAMPION = "champion"


def _no_branch_recommendation(pillar: Pillar, config: MeddpiccConfig) -> str:
    prompt = prompt_for(pillar.id, "no", config)
    if prompt is not None:
        return prompt.prompt
    if pillar.critical_actions:
        return pillar.critical_actions[0]
    return f"Address critical gaps in {pillar.title}"


def _pillar_insights(pillar: Pillar, answered: bool, fraction: float, config: MeddpiccConfig) -> list[Insight]:
    if fraction == 0:
        if not answered:
            return [Insight(
                type="risk", pillar=pillar.id,
                description=f"No {pillar.title} qualification captured",
                recommendation=_no_branch_recommendation(pillar, config),
                impact="Deal at risk without immediate action",
                priority="critical",
            )]
        return [Insight(
            type="risk", pillar=pillar.id,
            description=f"{pillar.title} answered but no evidence found",
            recommendation=_no_branch_recommendation(pillar, config),
            impact="Qualification gap confirmed by the seller",
            priority="high",
        )]
    if fraction < WEAKNESS_BELOW:
        recommendation = (
            pillar.improvement_actions[0] if pillar.improvement_actions
            else f"Strengthen {pillar.title} positioning"
        )
        return [Insight(
            type="weakness", pillar=pillar.id,
            description=f"Weak {pillar.title} qualification ({round(fraction * 100)}% of maximum)",
            recommendation=recommendation,
            impact="Forecast confidence reduced until this gap closes",
            priority="high",
        )]
    if fraction >= STRENGTH_AT:
        return [Insight(
            type="strength", pillar=pillar.id,
            description=f"Excellent {pillar.title} qualification",
            recommendation=f"Leverage strong {pillar.title} position in proposal",
            impact="Competitive advantage in this area",
            priority="low",
        )]
    return []


def generate_insights(assessment: Assessment, config: MeddpiccConfig) -> list[Insight]:
    """All insights for an assessment, unranked."""
    answered_pillars = {a.pillar for a in assessment.answers}
    scores = assessment.pillar_scores
    insights: list[Insight] = []

    for pillar in config.pillars:
        fraction = pillar_fraction(pillar.id, scores, config)
        insights.extend(_pillar_insights(pillar, pillar.id in answered_pillars, fraction, config))

    if (
        config.pillar(ECONOMIC_BUYER) is not None
        and config.pillar(CHAMPION) is not None
        and scores.get(ECONOMIC_BUYER, 0) == 0
        and scores.get(CHAMPION, 0) > 0
    ):
        insights.append(Insight(
            type="opportunity", pillar=ECONOMIC_BUYER,
            description="Champion in place but Economic Buyer not yet identified",
            recommendation="Leverage your champion to identify and secure access to the Economic Buyer",
            impact="Shortens the path to budget approval",
            priority="medium",
        ))

    if assessment.answers and assessment.confidence_score < LOW_CONFIDENCE_BELOW:
        insights.append(Insight(
            type="weakness", pillar=None,
            description="Low confidence in assessment data",
            recommendation="Conduct validation sessions to verify assumptions",
            impact="Forecasting accuracy at risk",
            priority="high",
        ))

    return insights


def rank_insights(insights: list[Insight], top_n: int | None = 10) -> list[Insight]:
    """Stable sort by priority (critical first), truncated to ``top_n``."""
    ranked = sorted(insights, key=lambda i: PRIORITY_ORDER[i.priority], reverse=True)
    return ranked if top_n is None else ranked[:top_n]


# ---------------------------------------------------------------------------
# Competitive position
# ---------------------------------------------------------------------------


def competitive_position(
    answers: list[Answer], pillar_scores: dict[str, int], config: MeddpiccConfig,
) -> tuple[list[str], list[str]]:
    """Return ``(strengths, concerns)`` message lists."""
    strengths: list[str] = []
    concerns: list[str] = []
    for pillar in config.pillars:
        fraction = pillar_fraction(pillar.id, pillar_scores, config)
        if fraction >= COMPETITIVE_STRENGTH_AT:
            strengths.append(pillar.strength_message or f"Strong {pillar.title} positioning")
        elif fraction < CONCERN_BELOW:
            concerns.append(pillar.concern_message or f"Concerns in {pillar.title} area")

    low_pillars = list(dict.fromkeys(
        a.pillar for a in latest_answers(answers).values() if a.confidence_level == "low"
    ))
    if low_pillars:
        concerns.append(f"Low confidence in: {', '.join(low_pillars)}")
    return strengths, concerns
