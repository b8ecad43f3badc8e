from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse

from meddpicc.analytics import BenchmarkComparison, PortfolioSummary, compare_to_benchmark
from meddpicc.insights import rank_insights
from meddpicc.models import Assessment, MeddpiccConfig, ValidationIssue
from meddpicc.schemas import (
    AnswerSubmit,
    CoachingPromptListResponse,
    CoachingPromptsRequest,
    InsightListResponse,
    StatusOut,
)
from meddpicc.services import MeddpiccService

log = logging.getLogger(__name__)

app = FastAPI(
    title="MEDDPICC",
    version="0.1.0",
    description=(
        "MEDDPICC qualification scoring for sales opportunities. "
        "Submit yes/partial/no answers per pillar and receive scores, risk, "
        "stage readiness, coaching prompts and insights. State is in-memory only."
    ),
    openapi_tags=[
        {"name": "Configuration", "description": "Pillars, questions and scoring tables."},
        {"name": "Assessments", "description": "Submit answers and read assessment snapshots."},
        {"name": "Insights", "description": "Insights, coaching prompts and benchmarks."},
        {"name": "Export", "description": "JSON, CSV and summary exports."},
        {"name": "Stats", "description": "Portfolio roll-ups across opportunities."},
    ],
)

_EXPORT_MEDIA_TYPES = {"json": "application/json", "csv": "text/csv", "summary": "text/plain"}


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _default_service() -> MeddpiccService:
    return MeddpiccService()


def get_service() -> MeddpiccService:
    return _default_service()


def _unwrap(result):
    if isinstance(result, ValidationIssue):
        raise HTTPException(422, result.model_dump())
    return result


# ---------------------------------------------------------------------------
# Routes: Configuration
# ---------------------------------------------------------------------------


@app.get("/api/config", response_model=MeddpiccConfig,
         tags=["Configuration"], summary="Get the active pillar/question/threshold configuration")
async def get_configuration(service: MeddpiccService = Depends(get_service)):
    return service.config


# ---------------------------------------------------------------------------
# Routes: Assessments
# ---------------------------------------------------------------------------


@app.get("/api/opportunities/{opportunity_id}/assessment", response_model=Assessment,
         tags=["Assessments"], summary="Get the current assessment (created empty on first access)")
async def get_assessment(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    return service.get_assessment(opportunity_id)


@app.post("/api/opportunities/{opportunity_id}/answers", response_model=Assessment,
          tags=["Assessments"], summary="Submit or replace one answer and recompute")
async def submit_answer(opportunity_id: str, body: AnswerSubmit,
                        service: MeddpiccService = Depends(get_service)):
    return _unwrap(service.submit_answer(
        opportunity_id, body.pillar, body.question_id, body.value,
        confidence_level=body.confidence_level, notes=body.notes,
    ))


@app.delete("/api/opportunities/{opportunity_id}/assessment", response_model=Assessment,
            tags=["Assessments"], summary="Discard all answers and return the empty assessment")
async def reset_assessment(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    return service.reset_assessment(opportunity_id)


@app.post("/api/opportunities/{opportunity_id}/complete", response_model=Assessment,
          tags=["Assessments"], summary="Mark the assessment completed (requires threshold completion)")
async def complete_assessment(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    return _unwrap(service.complete_assessment(opportunity_id))


@app.get("/api/opportunities/{opportunity_id}/status", response_model=StatusOut,
         tags=["Assessments"], summary="Get Draft/Completed status")
async def get_status(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    a = service.get_assessment(opportunity_id)
    return StatusOut(
        opportunity_id=opportunity_id,
        status=service.status(opportunity_id),
        completion_percentage=a.completion_percentage,
        completion_threshold=service.config.completion_threshold,
        version=a.version,
    )


# ---------------------------------------------------------------------------
# Routes: Insights
# ---------------------------------------------------------------------------


@app.get("/api/opportunities/{opportunity_id}/insights", response_model=InsightListResponse,
         tags=["Insights"], summary="Prioritized insights (critical first), cut to limit")
async def get_insights(
    opportunity_id: str,
    limit: int | None = Query(None, ge=1, le=100, description="Defaults to the configured insight limit"),
    service: MeddpiccService = Depends(get_service),
):
    insights = service.generate_insights(service.get_assessment(opportunity_id))
    ranked = rank_insights(insights, limit or service.config.insight_limit)
    return {"items": ranked, "total": len(insights)}


@app.get("/api/opportunities/{opportunity_id}/coaching-prompts", response_model=CoachingPromptListResponse,
         tags=["Insights"], summary="Coaching prompts triggered by the opportunity's answers")
async def get_opportunity_prompts(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    prompts = service.get_coaching_prompts(service.get_assessment(opportunity_id).answers)
    return {"items": prompts, "total": len(prompts)}


@app.post("/api/coaching-prompts", response_model=CoachingPromptListResponse,
          tags=["Insights"], summary="Coaching prompts triggered by an ad-hoc answer list")
async def get_prompts_for_answers(body: CoachingPromptsRequest,
                                  service: MeddpiccService = Depends(get_service)):
    prompts = service.get_coaching_prompts([a.to_answer() for a in body.answers])
    return {"items": prompts, "total": len(prompts)}


@app.get("/api/opportunities/{opportunity_id}/benchmark", response_model=BenchmarkComparison,
         tags=["Insights"], summary="Per-pillar variance against benchmark scores")
async def get_benchmark(opportunity_id: str, service: MeddpiccService = Depends(get_service)):
    return compare_to_benchmark(service.get_assessment(opportunity_id), service.config)


# ---------------------------------------------------------------------------
# Routes: Export
# ---------------------------------------------------------------------------


@app.get("/api/opportunities/{opportunity_id}/export", response_class=PlainTextResponse,
         tags=["Export"], summary="Export as json, csv or summary text")
async def export_assessment(
    opportunity_id: str,
    format: str = Query("json", description="json, csv or summary"),
    service: MeddpiccService = Depends(get_service),
):
    body = _unwrap(service.export_assessment(opportunity_id, format))
    return PlainTextResponse(body, media_type=_EXPORT_MEDIA_TYPES[format])


# ---------------------------------------------------------------------------
# Routes: Stats
# ---------------------------------------------------------------------------


@app.get("/api/portfolio", response_model=PortfolioSummary,
         tags=["Stats"], summary="Score and risk distribution across all assessed opportunities")
async def get_portfolio(service: MeddpiccService = Depends(get_service)):
    return service.portfolio_summary()


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn

    from meddpicc.config import get_settings
    settings = get_settings()
    uvicorn.run("meddpicc.app:app", host=settings.host, port=settings.port, reload=True)


if __name__ == "__main__":
    main()
