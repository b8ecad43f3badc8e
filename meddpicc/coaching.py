"""Coaching prompt selection and coaching actions."""
from __future__ import annotations

from typing import Iterable

from meddpicc.models import Answer, CoachingPrompt, MeddpiccConfig
from meddpicc.scorer import latest_answers, pillar_fraction

CRITICAL_ACTION_BELOW = 0.3
IMPROVEMENT_ACTION_BELOW = 0.6
LOW_CONFIDENCE_ACTION_AFTER = 3

DISCOVERY_ACTION = "Schedule discovery sessions to validate assumptions and increase confidence"


def select_prompts(answers: Iterable[Answer], config: MeddpiccConfig) -> list[CoachingPrompt]:
    """Prompts whose trigger matches some answer in their pillar, in table order."""
    given: set[tuple[str, str]] = {
        (a.pillar, a.answer_value) for a in latest_answers(answers).values()
    }
    return [p for p in config.coaching_prompts if (p.pillar, p.trigger) in given]


def prompt_for(pillar_id: str, trigger: str, config: MeddpiccConfig) -> CoachingPrompt | None:
    for p in config.coaching_prompts:
        if p.pillar == pillar_id and p.trigger == trigger:
            return p
    return None


def coaching_actions(
    answers: list[Answer], pillar_scores: dict[str, int], config: MeddpiccConfig,
) -> list[str]:
    actions: list[str] = [p.prompt for p in select_prompts(answers, config)]

    for pillar in config.pillars:
        fraction = pillar_fraction(pillar.id, pillar_scores, config)
        if fraction < CRITICAL_ACTION_BELOW:
            actions.extend(pillar.critical_actions or [f"Address critical gaps in {pillar.title}"])
        elif fraction < IMPROVEMENT_ACTION_BELOW:
            actions.extend(pillar.improvement_actions or [f"Strengthen {pillar.title} positioning"])

    low = [a for a in latest_answers(answers).values() if a.confidence_level == "low"]
    if len(low) > LOW_CONFIDENCE_ACTION_AFTER:
        actions.append(DISCOVERY_ACTION)

    deduped = list(dict.fromkeys(actions))
    return deduped[:config.coaching_action_limit]
