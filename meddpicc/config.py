"""Settings and configuration loading.

The pillar/question/threshold table is YAML, parsed into ``MeddpiccConfig`` and
checked for cross-reference and monotonicity errors.  A malformed table raises
``ConfigurationError`` so the engine never starts half-configured.
"""
from __future__ import annotations

import logging
import os
from collections import Counter
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from meddpicc.models import ConfigurationError, MeddpiccConfig

log = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_CONFIG_PATH = DATA_DIR / "meddpicc.yaml"


def _resolve_config_path() -> Path:
    override = os.getenv("MEDDPICC_CONFIG", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return DEFAULT_CONFIG_PATH


class Settings(BaseModel):
    config_path: Path = Field(default_factory=_resolve_config_path)
    host: str = Field(default_factory=lambda: os.getenv("MEDDPICC_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("MEDDPICC_PORT", "8002")))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {path}")
    return data


def parse_config(raw: dict[str, Any]) -> MeddpiccConfig:
    """Build and validate a config from a plain mapping."""
    try:
        config = MeddpiccConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Malformed MEDDPICC configuration: {exc}") from exc
    validate_config(config)
    return config


def load_config(path: str | Path | None = None) -> MeddpiccConfig:
    path = Path(path) if path is not None else get_settings().config_path
    config = parse_config(load_yaml(path))
    log.info(
        "Loaded MEDDPICC config %s from %s (%d pillars, %d questions, max %d)",
        config.version, path, len(config.pillars), config.total_questions, config.max_total_score,
    )
    return config


@lru_cache(maxsize=1)
def get_config() -> MeddpiccConfig:
    """Process-wide configuration, loaded once."""
    return load_config()


# ---------------------------------------------------------------------------
# Cross-field validation
# ---------------------------------------------------------------------------


def _check_unique(label: str, ids: list[str]) -> None:
    dupes = sorted(i for i, n in Counter(ids).items() if n > 1)
    if dupes:
        raise ConfigurationError(f"Duplicate {label}: {', '.join(dupes)}")


def validate_config(config: MeddpiccConfig) -> None:
    if not config.pillars:
        raise ConfigurationError("At least one pillar is required")
    pillar_ids = config.pillar_ids
    _check_unique("pillar ids", pillar_ids)
    # Question ids are addressed per pillar but exported flat, so keep them globally unique
    _check_unique("question ids", [q.id for p in config.pillars for q in p.questions])
    _check_unique("coaching prompt ids", [c.id for c in config.coaching_prompts])
    _check_unique("stage ids", [s.id for s in config.stages])

    known = set(pillar_ids)
    for prompt in config.coaching_prompts:
        if prompt.pillar not in known:
            raise ConfigurationError(f"Coaching prompt {prompt.id!r} references unknown pillar {prompt.pillar!r}")

    missing_weights = {"low", "medium", "high"} - set(config.confidence_weights)
    if missing_weights:
        raise ConfigurationError(f"Missing confidence weights: {', '.join(sorted(missing_weights))}")
    weights = config.confidence_weights
    if not 0 <= weights["low"] <= weights["medium"] <= weights["high"] <= 100:
        raise ConfigurationError("Confidence weights must satisfy 0 <= low <= medium <= high <= 100")

    if config.level_thresholds.moderate > config.level_thresholds.strong:
        raise ConfigurationError("Level thresholds must satisfy moderate <= strong")
    if not 0 < config.completion_threshold <= 100:
        raise ConfigurationError("completion_threshold must be in (0, 100]")

    _validate_risk_rules(config)
    _validate_stages(config, known)


def _validate_risk_rules(config: MeddpiccConfig) -> None:
    rules = config.risk_rules
    if not rules or not rules[-1].is_catch_all:
        raise ConfigurationError("Risk table must end with a catch-all rule")
    if any(r.is_catch_all for r in rules[:-1]):
        raise ConfigurationError("Only the last risk rule may be a catch-all")
    bounds = [r.below_score for r in rules if r.below_score is not None]
    if bounds != sorted(bounds):
        raise ConfigurationError(f"Risk score bands must be non-decreasing, got {bounds}")


def _validate_stages(config: MeddpiccConfig, known: set[str]) -> None:
    previous = None
    for stage in config.stages:
        unknown = [p for p in stage.pillars if p not in known]
        if unknown:
            raise ConfigurationError(f"Stage {stage.id!r} references unknown pillars: {', '.join(unknown)}")
        if previous is not None and not stage.relaxes_previous:
            if not set(previous.pillars) <= set(stage.pillars) or stage.min_fraction < previous.min_fraction:
                raise ConfigurationError(
                    f"Stage {stage.id!r} is less strict than {previous.id!r}; "
                    "set relaxes_previous to allow this"
                )
        if stage.relaxes_previous:
            log.info("Stage %s intentionally relaxes the previous stage gate", stage.id)
        previous = stage
