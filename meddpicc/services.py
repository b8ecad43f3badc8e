"""Shared business logic for the MEDDPICC API and CLI.

``MeddpiccService`` owns one ``AnswerStore`` per opportunity plus the latest
snapshot and lifecycle status.  Writes to the same opportunity are serialized
with a per-opportunity lock and each commit is followed by exactly one full
recompute, so a snapshot always reflects a consistent store.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Literal

from meddpicc import assessment as assembler
from meddpicc.analytics import PortfolioSummary, summarize_portfolio
from meddpicc.coaching import select_prompts
from meddpicc.config import get_config
from meddpicc.insights import generate_insights
from meddpicc.models import Answer, Assessment, CoachingPrompt, Insight, MeddpiccConfig, ValidationIssue
from meddpicc.store import AnswerStore, validate_answer

log = logging.getLogger(__name__)

Status = Literal["draft", "completed"]


@dataclass
class _Opportunity:
    store: AnswerStore
    assessment: Assessment
    status: Status = "draft"
    lock: threading.Lock = field(default_factory=threading.Lock)


class MeddpiccService:
    """Per-opportunity answer stores, snapshots and Draft/Completed state."""

    def __init__(self, config: MeddpiccConfig | None = None):
        self.config = config or get_config()
        self._registry_lock = threading.Lock()
        self._opportunities: dict[str, _Opportunity] = {}

    # -----------------------------------------------------------------------
    # Registry
    # -----------------------------------------------------------------------

    def _get_or_create(self, opportunity_id: str) -> _Opportunity:
        with self._registry_lock:
            opp = self._opportunities.get(opportunity_id)
            if opp is None:
                store = AnswerStore.create(opportunity_id, self.config)
                opp = _Opportunity(store=store, assessment=assembler.recompute(store, self.config))
                self._opportunities[opportunity_id] = opp
                log.info("Created assessment for opportunity %s", opportunity_id)
            return opp

    def opportunity_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._opportunities)

    def load_answers(self, opportunity_id: str, answers: Iterable[Answer]) -> Assessment:
        """Replace an opportunity's answers with externally stored ones and recompute."""
        opp = self._get_or_create(opportunity_id)
        with opp.lock:
            opp.status = "draft"
            opp.store = AnswerStore.create(opportunity_id, self.config, answers)
            opp.assessment = assembler.recompute(opp.store, self.config, opp.assessment)
            self._update_status(opp)
            return opp.assessment

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def _completable(self, a: Assessment) -> bool:
        return a.completion_percentage >= self.config.completion_threshold

    def _update_status(self, opp: _Opportunity, reopened: bool = False) -> None:
        # The edit that reopened a completed assessment leaves it draft until a later edit or complete().
        if opp.status == "draft" and not reopened and self._completable(opp.assessment):
            opp.status = "completed"
            log.info(
                "Opportunity %s completed at %.1f%%",
                opp.store.opportunity_id, opp.assessment.completion_percentage,
            )

    def status(self, opportunity_id: str) -> Status:
        return self._get_or_create(opportunity_id).status

    def complete_assessment(self, opportunity_id: str) -> Assessment | ValidationIssue:
        opp = self._get_or_create(opportunity_id)
        with opp.lock:
            if not self._completable(opp.assessment):
                return ValidationIssue(
                    code="incomplete",
                    message=(
                        f"Completion {opp.assessment.completion_percentage:.1f}% is below the "
                        f"{self.config.completion_threshold:.0f}% threshold"
                    ),
                )
            opp.status = "completed"
            return opp.assessment

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def submit_answer(
        self,
        opportunity_id: str,
        pillar: str,
        question_id: str,
        value: str,
        confidence_level: str = "medium",
        notes: str | None = None,
    ) -> Assessment | ValidationIssue:
        opp = self._get_or_create(opportunity_id)
        with opp.lock:
            if opp.status == "completed" and self.config.lock_completed:
                return ValidationIssue(
                    code="assessment_locked",
                    message=f"Assessment for {opportunity_id} is completed and locked",
                    pillar=pillar, question_id=question_id, value=value,
                )
            issue = validate_answer(self.config, pillar, question_id, value, confidence_level)
            if issue is not None:
                log.warning("Rejected answer for %s: %s", opportunity_id, issue.message)
                return issue

            reopened = opp.status == "completed"
            if reopened:
                log.info("Reopening completed assessment for %s", opportunity_id)
                opp.status = "draft"
            opp.store.upsert(pillar, question_id, value, confidence_level, notes)
            opp.assessment = assembler.recompute(opp.store, self.config, opp.assessment)
            self._update_status(opp, reopened)
            return opp.assessment

    def get_assessment(self, opportunity_id: str) -> Assessment:
        return self._get_or_create(opportunity_id).assessment

    def reset_assessment(self, opportunity_id: str) -> Assessment:
        opp = self._get_or_create(opportunity_id)
        with opp.lock:
            opp.store.reset()
            opp.status = "draft"
            opp.assessment = assembler.recompute(opp.store, self.config, opp.assessment)
            log.info("Reset assessment for %s (v%d)", opportunity_id, opp.assessment.version)
            return opp.assessment

    def export_assessment(self, opportunity_id: str, fmt: str = "json") -> str | ValidationIssue:
        if fmt not in assembler.EXPORT_FORMATS:
            return ValidationIssue(
                code="unknown_format",
                message=f"Unknown export format {fmt!r}; expected one of {', '.join(assembler.EXPORT_FORMATS)}",
                value=fmt,
            )
        return assembler.export_assessment(self.get_assessment(opportunity_id), self.config, fmt)

    def generate_insights(self, assessment: Assessment) -> list[Insight]:
        return generate_insights(assessment, self.config)

    def get_coaching_prompts(self, answers: Iterable[Answer]) -> list[CoachingPrompt]:
        return select_prompts(answers, self.config)

    def portfolio_summary(self) -> PortfolioSummary:
        with self._registry_lock:
            snapshots = [o.assessment for o in self._opportunities.values()]
        return summarize_portfolio(snapshots, self.config)
