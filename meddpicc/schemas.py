"""Pydantic request/response schemas for the MEDDPICC API."""
from __future__ import annotations

from pydantic import BaseModel

from meddpicc.models import Answer, CoachingPrompt, ConfidenceLevel, Insight


class AnswerSubmit(BaseModel):
    pillar: str
    question_id: str
    value: str
    # Plain str so an unknown level comes back as a structured issue rather than a schema error
    confidence_level: str = "medium"
    notes: str | None = None


class AnswerIn(BaseModel):
    pillar: str
    question_id: str
    answer_value: str
    score: int = 0
    confidence_level: ConfidenceLevel = "medium"
    evidence_notes: str | None = None

    def to_answer(self) -> Answer:
        return Answer(**self.model_dump())


class CoachingPromptsRequest(BaseModel):
    answers: list[AnswerIn] = []


class InsightListResponse(BaseModel):
    items: list[Insight]
    total: int


class CoachingPromptListResponse(BaseModel):
    items: list[CoachingPrompt]
    total: int


class StatusOut(BaseModel):
    opportunity_id: str
    status: str
    completion_percentage: float
    completion_threshold: float
    version: int
