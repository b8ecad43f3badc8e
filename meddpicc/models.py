"""Typed configuration and result models for the MEDDPICC engine.

Configuration types (Option, Question, Pillar, CoachingPrompt, RiskRule,
StageRequirement, MeddpiccConfig) are validated once at load time.  Result
types (Answer, Assessment, Insight) are frozen snapshots handed to callers.
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConfidenceLevel = Literal["low", "medium", "high"]
RiskLevel = Literal["low", "medium", "high", "critical"]
Priority = Literal["low", "medium", "high", "critical"]
InsightType = Literal["risk", "weakness", "opportunity", "strength"]
ScoreLevel = Literal["strong", "moderate", "weak"]

PRIORITY_ORDER: dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}


class ConfigurationError(Exception):
    """Pillar/question/threshold configuration is malformed."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str
    score: int = Field(ge=0)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    tooltip: str = ""
    options: list[Option]

    @field_validator("options")
    @classmethod
    def options_must_be_unique(cls, v: list[Option]) -> list[Option]:
        if not v:
            raise ValueError("question must define at least one option")
        values = [o.value for o in v]
        if len(values) != len(set(values)):
            raise ValueError(f"duplicate option values: {values}")
        return v

    @property
    def max_score(self) -> int:
        return max(o.score for o in self.options)

    def option(self, value: str) -> Option | None:
        for o in self.options:
            if o.value == value:
                return o
        return None


class Pillar(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    primer: str = ""
    questions: list[Question]
    # Templates for coaching actions, strengths, concerns and benchmarks
    critical_actions: list[str] = []
    improvement_actions: list[str] = []
    strength_message: str = ""
    concern_message: str = ""
    benchmark: int | None = None

    @field_validator("questions")
    @classmethod
    def questions_must_be_unique(cls, v: list[Question]) -> list[Question]:
        if not v:
            raise ValueError("pillar must define at least one question")
        ids = [q.id for q in v]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate question ids: {ids}")
        return v

    @property
    def max_score(self) -> int:
        return sum(q.max_score for q in self.questions)

    def question(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


class CoachingPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    pillar: str
    trigger: str  # answer value that fires the prompt
    prompt: str
    priority: Priority = "medium"
    action_items: list[str] = []


class RiskRule(BaseModel):
    """One row of the risk decision table; all present conditions must hold."""
    model_config = ConfigDict(frozen=True)

    level: RiskLevel
    below_score: int | None = None
    below_confidence: int | None = None
    below_completion: float | None = None

    @property
    def is_catch_all(self) -> bool:
        return self.below_score is None and self.below_confidence is None and self.below_completion is None


class StageRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    pillars: list[str]
    min_fraction: float = Field(ge=0.0, le=1.0)
    relaxes_previous: bool = False


class LevelThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    strong: int = 256
    moderate: int = 192


class MeddpiccConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str = "1.0.0"
    pillars: list[Pillar]
    risk_rules: list[RiskRule]
    stages: list[StageRequirement]
    coaching_prompts: list[CoachingPrompt] = []
    confidence_weights: dict[str, int] = {"low": 33, "medium": 66, "high": 100}
    level_thresholds: LevelThresholds = LevelThresholds()
    completion_threshold: float = 80.0
    insight_limit: int = 10
    coaching_action_limit: int = 5
    lock_completed: bool = False

    def pillar(self, pillar_id: str) -> Pillar | None:
        for p in self.pillars:
            if p.id == pillar_id:
                return p
        return None

    @property
    def pillar_ids(self) -> list[str]:
        return [p.id for p in self.pillars]

    @property
    def max_total_score(self) -> int:
        return sum(p.max_score for p in self.pillars)

    @property
    def total_questions(self) -> int:
        return sum(len(p.questions) for p in self.pillars)


# ---------------------------------------------------------------------------
# Answers, assessments, insights
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Answer(BaseModel):
    model_config = ConfigDict(frozen=True)

    pillar: str
    question_id: str
    answer_value: str
    score: int
    confidence_level: ConfidenceLevel = "medium"
    evidence_notes: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ValidationIssue(BaseModel):
    """Structured rejection returned instead of raising for expected bad input."""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    pillar: str | None = None
    question_id: str | None = None
    value: str | None = None


class PillarBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    pillar: str
    title: str
    score: int
    max_score: int
    percentage: float
    level: ScoreLevel


VOLATILE_FIELDS = frozenset({"last_updated", "version"})


class Assessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    opportunity_id: str
    answers: list[Answer] = []
    pillar_scores: dict[str, int] = {}
    total_score: int = 0
    max_total_score: int = 0
    completion_percentage: float = 0.0
    confidence_score: int = 0
    risk_level: RiskLevel = "critical"
    overall_level: ScoreLevel = "weak"
    stage_readiness: dict[str, bool] = {}
    coaching_actions: list[str] = []
    competitive_strengths: list[str] = []
    areas_of_concern: list[str] = []
    last_updated: datetime = Field(default_factory=_utcnow)
    version: int = 0

    def stable_view(self) -> dict[str, Any]:
        """Everything except the recompute clock and counter."""
        return self.model_dump(mode="json", exclude=set(VOLATILE_FIELDS))


class Insight(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: InsightType
    pillar: str | None = None
    description: str
    recommendation: str
    impact: str
    priority: Priority
