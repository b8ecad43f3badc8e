from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from meddpicc.assessment import EXPORT_FORMATS
from meddpicc.config import get_config, get_settings, load_config, load_yaml
from meddpicc.insights import rank_insights
from meddpicc.legacy import from_legacy
from meddpicc.models import Assessment, ConfigurationError, ValidationIssue
from meddpicc.scorer import pillar_breakdown
from meddpicc.services import MeddpiccService

app = typer.Typer(help="MEDDPICC qualification scoring and coaching")
console = Console()

log = logging.getLogger(__name__)


def _configure_logging(*, verbose: int, json_output: bool) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=False)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


@app.callback()
def app_callback(
    ctx: typer.Context,
    config_path: str | None = typer.Option(
        None,
        "--config",
        help="Pillar/question/threshold YAML (defaults to the bundled canonical table).",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON for scripting."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    if config_path:
        os.environ["MEDDPICC_CONFIG"] = str(Path(config_path).expanduser().resolve())
        get_settings.cache_clear()
        get_config.cache_clear()
    ctx.obj = {"json_output": json_output, "verbose": verbose}
    _configure_logging(verbose=verbose, json_output=json_output)


def _wants_json(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json_output"))


def _load_service() -> MeddpiccService:
    try:
        return MeddpiccService(get_config())
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=2) from exc


def _render_assessment(a: Assessment, service: MeddpiccService) -> None:
    header = Table(show_header=False, box=ROUNDED)
    header.add_column("Metric", style="bold")
    header.add_column("Value")
    header.add_row("Total score", f"{a.total_score}/{a.max_total_score} ({a.overall_level})")
    header.add_row("Risk", a.risk_level)
    header.add_row("Confidence", f"{a.confidence_score}/100")
    header.add_row("Completion", f"{a.completion_percentage:.1f}%")
    header.add_row("Stages", ", ".join(f"{s}={'yes' if ok else 'no'}" for s, ok in a.stage_readiness.items()))
    console.print(Panel(header, title=f"Opportunity {a.opportunity_id}", border_style="cyan"))

    pillars = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    for col in ("Pillar", "Score", "%", "Level"):
        pillars.add_column(col)
    for row in pillar_breakdown(a.pillar_scores, service.config):
        pillars.add_row(row.title, f"{row.score}/{row.max_score}", f"{row.percentage:.1f}", row.level)
    console.print(pillars)

    insights = rank_insights(service.generate_insights(a), service.config.insight_limit)
    if insights:
        table = Table(show_header=True, header_style="bold magenta", box=ROUNDED)
        for col in ("Priority", "Type", "Insight", "Recommendation"):
            table.add_column(col)
        for i in insights:
            table.add_row(i.priority, i.type, i.description, i.recommendation)
        console.print(Panel(table, title="Insights", border_style="magenta"))

    for action in a.coaching_actions:
        console.print(f"  - {action}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("score")
def score_command(
    ctx: typer.Context,
    answers_file: Path = typer.Argument(..., help="YAML/JSON file with opportunity_id and answers."),
    fmt: str | None = typer.Option(None, "--format", help="Export instead of rendering: json, csv or summary."),
) -> None:
    """Score an opportunity from an answers file."""
    if fmt is not None and fmt not in EXPORT_FORMATS:
        raise typer.BadParameter(f"--format must be one of: {', '.join(EXPORT_FORMATS)}")
    try:
        data = load_yaml(answers_file)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    service = _load_service()
    opportunity_id = str(data.get("opportunity_id") or answers_file.stem)
    rejected: list[ValidationIssue] = []
    for raw in data.get("answers") or []:
        result = service.submit_answer(
            opportunity_id,
            str(raw.get("pillar", "")),
            str(raw.get("question_id", "")),
            str(raw.get("value", "")),
            confidence_level=str(raw.get("confidence_level", "medium")),
            notes=raw.get("notes"),
        )
        if isinstance(result, ValidationIssue):
            rejected.append(result)

    assessment = service.get_assessment(opportunity_id)
    if fmt is not None:
        body = service.export_assessment(opportunity_id, fmt)
        typer.echo(body, nl=not body.endswith("\n"))
    elif _wants_json(ctx):
        payload: dict[str, Any] = assessment.model_dump(mode="json")
        payload["rejected"] = [r.model_dump() for r in rejected]
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        _render_assessment(assessment, service)

    for issue in rejected:
        typer.echo(f"Rejected {issue.code}: {issue.message}", err=True)
    if rejected:
        raise typer.Exit(code=1)


@app.command("validate-config")
def validate_config_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Configuration YAML to check."),
    legacy: bool = typer.Option(
        False, "--legacy",
        help="Treat the file as the legacy shape (maxScore, condition prompts, stage_requirements).",
    ),
) -> None:
    """Load a configuration file and report whether it is valid."""
    try:
        if legacy:
            raw = load_yaml(path)
            config = from_legacy(raw, raw.get("stage_requirements"))
        else:
            config = load_config(path)
    except ConfigurationError as exc:
        if _wants_json(ctx):
            typer.echo(json.dumps({"valid": False, "error": str(exc)}))
        else:
            console.print(f"[red]Invalid:[/red] {exc}")
        raise typer.Exit(code=2) from exc

    summary = {
        "valid": True,
        "version": config.version,
        "pillars": len(config.pillars),
        "questions": config.total_questions,
        "max_total_score": config.max_total_score,
        "stages": [s.id for s in config.stages],
    }
    if _wants_json(ctx):
        typer.echo(json.dumps(summary, indent=2))
        return
    console.print(
        f"[green]Valid[/green] config {config.version}: {summary['pillars']} pillars, "
        f"{summary['questions']} questions, max {summary['max_total_score']}"
    )


@app.command("questions")
def questions_command(
    ctx: typer.Context,
    pillar: str | None = typer.Option(None, help="Only list this pillar."),
) -> None:
    """List pillars, question ids and option scores."""
    config = _load_service().config
    pillars = [p for p in config.pillars if pillar is None or p.id == pillar]
    if pillar is not None and not pillars:
        raise typer.BadParameter(f"Unknown pillar {pillar!r}")

    if _wants_json(ctx):
        typer.echo(json.dumps([p.model_dump(include={"id", "title", "questions"}) for p in pillars], indent=2))
        return
    for p in pillars:
        table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
        table.add_column("Id", style="bold")
        table.add_column("Question")
        table.add_column("Options")
        for q in p.questions:
            table.add_row(q.id, q.text, ", ".join(f"{o.value}={o.score}" for o in q.options))
        console.print(Panel(table, title=f"{p.title} (max {p.max_score})", border_style="cyan"))


@app.command("serve")
def serve_command() -> None:
    """Run the HTTP API."""
    from meddpicc.app import main

    main()


if __name__ == "__main__":
    app()
