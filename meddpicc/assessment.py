"""Assessment assembly and export.

``recompute`` rebuilds a full snapshot from the answer store every time; there
is no incremental patching.  Exports come in three flavours: a versioned JSON
document (which ``import_json`` reads back), a flat CSV of pillar scores, and a
plain-text summary.
"""
from __future__ import annotations

import csv
import io
import json
import logging
from datetime import UTC, datetime
from typing import Any

from meddpicc.coaching import coaching_actions
from meddpicc.insights import competitive_position, generate_insights, rank_insights
from meddpicc.models import Assessment, MeddpiccConfig
from meddpicc.scorer import (
    classify_risk,
    compute_confidence,
    compute_pillar_scores,
    compute_total_score,
    completion_percentage,
    evaluate_stage_readiness,
    overall_level,
    pillar_breakdown,
)
from meddpicc.store import AnswerStore

log = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "2.0"
EXPORT_FORMATS = ("json", "csv", "summary")
CSV_HEADER = ["pillar", "title", "score", "max_score", "percentage", "level"]


def recompute(
    store: AnswerStore,
    config: MeddpiccConfig,
    previous: Assessment | None = None,
) -> Assessment:
    """Build a fresh snapshot from the store's current contents."""
    answers = store.answers()
    pillar_scores = compute_pillar_scores(answers, config)
    total = compute_total_score(pillar_scores)
    completion = completion_percentage(answers, config)
    confidence = compute_confidence(answers, config)
    strengths, concerns = competitive_position(answers, pillar_scores, config)

    version = (previous.version if previous is not None else 0) + 1

    return Assessment(
        opportunity_id=store.opportunity_id,
        answers=answers,
        pillar_scores=pillar_scores,
        total_score=total,
        max_total_score=config.max_total_score,
        completion_percentage=completion,
        confidence_score=confidence,
        risk_level=classify_risk(total, confidence, completion, config),
        overall_level=overall_level(total, config),
        stage_readiness=evaluate_stage_readiness(pillar_scores, config),
        coaching_actions=coaching_actions(answers, pillar_scores, config),
        competitive_strengths=strengths,
        areas_of_concern=concerns,
        last_updated=datetime.now(UTC),
        version=version,
    )


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


def export_json(assessment: Assessment, config: MeddpiccConfig) -> str:
    insights = rank_insights(generate_insights(assessment, config), top_n=None)
    document: dict[str, Any] = {
        "format_version": EXPORT_FORMAT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "assessment": assessment.model_dump(mode="json"),
        "insights": [i.model_dump(mode="json") for i in insights],
        "metadata": {
            "methodology": "MEDDPICC",
            "config_version": config.version,
            "confidence_scoring": True,
            "risk_assessment": True,
        },
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def import_json(payload: str) -> Assessment:
    """Restore the Assessment from an ``export_json`` document."""
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Export is not valid JSON: {exc}") from exc
    if not isinstance(document, dict) or "assessment" not in document:
        raise ValueError("Export document has no 'assessment' section")
    fmt = str(document.get("format_version", ""))
    if fmt.split(".")[0] != EXPORT_FORMAT_VERSION.split(".")[0]:
        raise ValueError(f"Unsupported export format version {fmt!r}")
    return Assessment.model_validate(document["assessment"])


def export_csv(assessment: Assessment, config: MeddpiccConfig) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_HEADER, lineterminator="\n")
    writer.writeheader()
    for row in pillar_breakdown(assessment.pillar_scores, config):
        writer.writerow(row.model_dump())
    max_total = assessment.max_total_score or config.max_total_score
    writer.writerow({
        "pillar": "TOTAL",
        "title": "Total",
        "score": assessment.total_score,
        "max_score": max_total,
        "percentage": round(100 * assessment.total_score / max_total, 1) if max_total else 0.0,
        "level": assessment.overall_level,
    })
    return buf.getvalue()


def export_summary(assessment: Assessment, config: MeddpiccConfig) -> str:
    lines = [
        "MEDDPICC Assessment Summary",
        f"Opportunity ID: {assessment.opportunity_id}",
        f"Overall Score: {assessment.total_score}/{assessment.max_total_score} "
        f"({assessment.overall_level.upper()})",
        f"Risk Level: {assessment.risk_level.upper()}",
        f"Confidence: {assessment.confidence_score}/100",
        f"Completion: {assessment.completion_percentage:.1f}%",
        f"Last Updated: {assessment.last_updated.strftime('%Y-%m-%d')} (v{assessment.version})",
        "",
        "Pillar Breakdown:",
    ]
    for row in pillar_breakdown(assessment.pillar_scores, config):
        lines.append(f"  {row.title}: {row.score}/{row.max_score} ({row.percentage:.1f}% - {row.level})")
    lines += ["", "Stage Readiness:"]
    for stage, ready in assessment.stage_readiness.items():
        lines.append(f"  {stage}: {'ready' if ready else 'not ready'}")
    if assessment.coaching_actions:
        lines += ["", "Coaching Recommendations:"]
        lines += [f"  - {action}" for action in assessment.coaching_actions]
    top = rank_insights(generate_insights(assessment, config), config.insight_limit)
    if top:
        lines += ["", "Key Insights:"]
        lines += [f"  [{i.priority.upper()}] {i.description}: {i.recommendation}" for i in top]
    return "\n".join(lines)


def export_assessment(assessment: Assessment, config: MeddpiccConfig, fmt: str = "json") -> str:
    if fmt == "json":
        return export_json(assessment, config)
    if fmt == "csv":
        return export_csv(assessment, config)
    if fmt == "summary":
        return export_summary(assessment, config)
    raise ValueError(f"Unknown export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")
