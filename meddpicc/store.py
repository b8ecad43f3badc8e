"""In-memory answer store for one opportunity.

Holds the latest answer per (pillar, question_id).  Every write is validated
against the configuration first; a rejected write returns a ``ValidationIssue``
and leaves the store untouched.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Iterable

from meddpicc.models import Answer, MeddpiccConfig, ValidationIssue
from meddpicc.scorer import latest_answers

log = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("low", "medium", "high")


def validate_answer(
    config: MeddpiccConfig,
    pillar: str,
    question_id: str,
    value: str,
    confidence_level: str = "medium",
) -> ValidationIssue | None:
    """Return the first problem with a proposed answer, or ``None``."""
    pillar_cfg = config.pillar(pillar)
    if pillar_cfg is None:
        return ValidationIssue(
            code="unknown_pillar", message=f"Unknown pillar {pillar!r}",
            pillar=pillar, question_id=question_id, value=value,
        )
    question = pillar_cfg.question(question_id)
    if question is None:
        return ValidationIssue(
            code="unknown_question", message=f"Unknown question {question_id!r} in pillar {pillar!r}",
            pillar=pillar, question_id=question_id, value=value,
        )
    if question.option(value) is None:
        allowed = ", ".join(o.value for o in question.options)
        return ValidationIssue(
            code="invalid_option", message=f"Value {value!r} is not one of: {allowed}",
            pillar=pillar, question_id=question_id, value=value,
        )
    if confidence_level not in CONFIDENCE_LEVELS:
        return ValidationIssue(
            code="invalid_confidence",
            message=f"Confidence level {confidence_level!r} must be low, medium or high",
            pillar=pillar, question_id=question_id, value=value,
        )
    return None


class AnswerStore:
    """Latest answers for one opportunity, keyed by (pillar, question_id)."""

    def __init__(self, opportunity_id: str, config: MeddpiccConfig):
        self.opportunity_id = opportunity_id
        self.config = config
        self._answers: dict[tuple[str, str], Answer] = {}

    @classmethod
    def create(
        cls, opportunity_id: str, config: MeddpiccConfig, answers: Iterable[Answer] = (),
    ) -> AnswerStore:
        """New store, optionally seeded; invalid seed answers are skipped with a warning.

        Duplicate seed answers for one question resolve to the newest timestamp.
        """
        store = cls(opportunity_id, config)
        for a in latest_answers(answers).values():
            result = store.upsert(
                a.pillar, a.question_id, a.answer_value,
                confidence_level=a.confidence_level, notes=a.evidence_notes, timestamp=a.timestamp,
            )
            if isinstance(result, ValidationIssue):
                log.warning("Skipping seed answer for %s: %s", opportunity_id, result.message)
        return store

    def upsert(
        self,
        pillar: str,
        question_id: str,
        value: str,
        confidence_level: str = "medium",
        notes: str | None = None,
        timestamp: datetime | None = None,
    ) -> Answer | ValidationIssue:
        issue = validate_answer(self.config, pillar, question_id, value, confidence_level)
        if issue is not None:
            return issue
        option = self.config.pillar(pillar).question(question_id).option(value)
        answer = Answer(
            pillar=pillar,
            question_id=question_id,
            answer_value=value,
            score=option.score,
            confidence_level=confidence_level,
            evidence_notes=notes,
            timestamp=timestamp or datetime.now(UTC),
        )
        self._answers[(pillar, question_id)] = answer
        return answer

    def get(self, pillar: str, question_id: str) -> Answer | None:
        return self._answers.get((pillar, question_id))

    def answers(self) -> list[Answer]:
        """Snapshot of live answers in configuration order."""
        ordered: list[Answer] = []
        for p in self.config.pillars:
            for q in p.questions:
                a = self._answers.get((p.id, q.id))
                if a is not None:
                    ordered.append(a)
        return ordered

    def for_pillar(self, pillar: str) -> list[Answer]:
        return [a for a in self.answers() if a.pillar == pillar]

    def reset(self) -> None:
        self._answers.clear()

    def __len__(self) -> int:
        return len(self._answers)
