"""Adapter from the legacy MEDDPICC configuration shape.

The legacy table is a loosely-typed mapping: camelCase ``maxScore``, a
``scoring.thresholds`` block with strong/moderate/weak bands, coaching prompts
keyed by a ``condition`` object, and stage requirements expressed as
``{stage: {min_score, required_pillars}}``.  ``from_legacy`` converts it into a
validated ``MeddpiccConfig``; sections the legacy shape never had (risk table,
confidence weights) come from the canonical configuration.
"""
from __future__ import annotations

import logging
from typing import Any

from meddpicc.config import get_config, parse_config
from meddpicc.models import ConfigurationError, MeddpiccConfig

log = logging.getLogger(__name__)

# Legacy readiness checked every required pillar against a flat 20 of 40 points.
LEGACY_PILLAR_FLOOR = 20
LEGACY_PILLAR_MAX = 40


def _convert_question(raw: dict[str, Any]) -> dict[str, Any]:
    qtype = raw.get("type", "single-select")
    if qtype != "single-select":
        log.warning("Legacy question %s has type %r; treating as single-select", raw.get("id"), qtype)
    return {
        "id": raw["id"],
        "text": raw.get("text", ""),
        "tooltip": raw.get("tooltip") or "",
        "options": [
            {"label": o.get("label", o["value"]), "value": o["value"], "score": int(o.get("score", 0))}
            for o in raw.get("options", [])
        ],
    }


def _convert_pillar(raw: dict[str, Any]) -> dict[str, Any]:
    questions = [_convert_question(q) for q in raw.get("questions", [])]
    computed = sum(max((o["score"] for o in q["options"]), default=0) for q in questions)
    declared = raw.get("maxScore")
    if declared is not None and declared != computed:
        log.warning(
            "Legacy pillar %s declares maxScore=%s but its options sum to %s; using %s",
            raw.get("id"), declared, computed, computed,
        )
    return {
        "id": raw["id"],
        "title": raw.get("title", raw["id"]),
        "description": raw.get("description", ""),
        "primer": raw.get("primer", ""),
        "questions": questions,
    }


def _convert_prompts(raw_prompts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    prompts: list[dict[str, Any]] = []
    for raw in raw_prompts:
        condition = raw.get("condition") or {}
        operator = condition.get("operator", "equals")
        if operator != "equals":
            log.warning("Dropping legacy coaching prompt %s: operator %r is not supported", raw.get("id"), operator)
            continue
        prompts.append({
            "id": raw["id"],
            "pillar": condition.get("pillar", raw.get("pillar")),
            "trigger": condition["value"],
            "prompt": raw.get("prompt", ""),
            "priority": raw.get("priority", "medium"),
            "action_items": list(raw.get("action_items") or []),
        })
    return prompts


def _convert_stages(raw_stages: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
    stages: list[dict[str, Any]] = []
    previous: set[str] | None = None
    for stage_id, req in raw_stages.items():
        pillars = list(req.get("required_pillars", []))
        if req.get("min_score"):
            log.info("Legacy stage %s total-score floor %s is not carried over", stage_id, req["min_score"])
        relaxes = previous is not None and not previous <= set(pillars)
        stages.append({
            "id": stage_id,
            "pillars": pillars,
            "min_fraction": LEGACY_PILLAR_FLOOR / LEGACY_PILLAR_MAX,
            "relaxes_previous": relaxes,
        })
        previous = set(pillars)
    return stages


def _convert(
    legacy: dict[str, Any],
    stage_requirements: dict[str, dict[str, Any]] | None,
    base: MeddpiccConfig,
) -> dict[str, Any]:
    thresholds = (legacy.get("scoring") or {}).get("thresholds") or {}
    raw: dict[str, Any] = {
        "version": str(legacy.get("version", "legacy")),
        "pillars": [_convert_pillar(p) for p in legacy.get("pillars", [])],
        "coaching_prompts": _convert_prompts(legacy.get("coaching_prompts", [])),
        "risk_rules": [r.model_dump() for r in base.risk_rules],
        "confidence_weights": dict(base.confidence_weights),
        "level_thresholds": {
            "strong": (thresholds.get("strong") or {}).get("min", base.level_thresholds.strong),
            "moderate": (thresholds.get("moderate") or {}).get("min", base.level_thresholds.moderate),
        },
        "completion_threshold": base.completion_threshold,
    }
    if stage_requirements:
        raw["stages"] = _convert_stages(stage_requirements)
    else:
        known = {p["id"] for p in raw["pillars"]}
        raw["stages"] = [
            s.model_dump() for s in base.stages if all(p in known for p in s.pillars)
        ]
    return raw


def from_legacy(
    legacy: dict[str, Any],
    stage_requirements: dict[str, dict[str, Any]] | None = None,
    base: MeddpiccConfig | None = None,
) -> MeddpiccConfig:
    """Translate a legacy configuration mapping; raises ``ConfigurationError`` if invalid."""
    base = base or get_config()
    try:
        raw = _convert(legacy, stage_requirements, base)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Malformed legacy configuration: {exc!r}") from exc
    return parse_config(raw)
