from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import typer
import yaml

from release_compass.core.config import Settings, load_settings
from release_compass.core.errors import (
    CompassError,
    DependencyValidationError,
    ProjectLoadError,
    ProjectValidationError,
)
from release_compass.core.finance.financial_engine import (
    PROJECT_BUDGETS,
    calculate_compression_impact,
    calculate_timeline_compression,
    validate_budget,
)
from release_compass.core.io.codec import project_document, summary_to_dict
from release_compass.core.io.dates import parse_datetime, to_iso
from release_compass.core.io.load_project import dump_project_yaml, load_project
from release_compass.core.lint.lint_project import lint_project
from release_compass.core.model import ALLOWED_PROJECT_TYPES, Project, ProjectGraph
from release_compass.core.session.project_session import ProjectSession
from release_compass.core.templates.generate_milestones import generate_milestones
from release_compass.core.templates.template_config import (
    MilestoneTemplate,
    TemplateConfigError,
    load_and_merge,
)
from release_compass.core.validate.validate_project import summarize_project, validate_project
from release_compass.logging_config import configure_logging

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (default: RELEASE_COMPASS_LOG_LEVEL or WARNING)",
    ),
) -> None:
    """Release planning CLI."""
    settings = _settings(log_level=log_level)
    try:
        configure_logging(level=settings.log_level)
    except ValueError as e:
        _print_errors([ProjectValidationError(code="E_CONFIG_INVALID", message=str(e), path="log_level")])
        raise typer.Exit(code=2)


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a project file."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    def _emit_json(ok: bool, *, exit_code: int, errors: list[CompassError], summary: dict | None) -> None:
        payload = {
            "tool": "release-compass",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        doc = load_project(path)
    except ProjectLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)

    graph, errors = validate_project(doc)
    if errors:
        if format == "json":
            _emit_json(False, exit_code=2, errors=list(errors), summary=None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    assert graph is not None

    if format == "text":
        typer.echo(summarize_project(graph))
        return

    counts = Counter(m.status for m in graph.milestones)
    summary = {
        "milestone_count": len(graph.milestones),
        "status_counts": {k: int(v) for k, v in counts.items()},
        "dependency_count": sum(len(m.dependencies) for m in graph.milestones),
        "project_type": graph.project.type if graph.project else None,
    }
    _emit_json(True, exit_code=0, errors=[], summary=summary)


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Lint a project file (ordering, cycles, budget and spacing rules)."""
    _check_format(format, "E_LINT_UNKNOWN_FORMAT")

    def _emit_json(ok: bool, errors: list[CompassError], exit_code: int) -> None:
        payload = {
            "tool": "release-compass",
            "command": "lint",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        doc = load_project(path)
    except ProjectLoadError as e:
        if format == "json":
            _emit_json(False, [e], 1)
        _print_errors([e])
        raise typer.Exit(code=1)

    _, validation_errors = validate_project(doc)
    errors: list[CompassError] = list(lint_project(doc)) + list(validation_errors)

    if format == "text":
        if errors:
            _print_errors(errors)
            raise typer.Exit(code=2)
        typer.echo("OK: lint passed")
        return

    if errors:
        _emit_json(False, errors, 2)
    _emit_json(True, [], 0)


@app.command("templates")
def templates(
    template_file: Optional[str] = typer.Option(
        None,
        "--template-file",
        help="Optional YAML file to add/override templates",
    ),
) -> None:
    """List milestone templates per release type."""
    templates_map = _load_templates(_settings(template_file=template_file).template_file)

    typer.echo("Templates:")
    for name in sorted(templates_map.keys()):
        steps = ", ".join(f"{t.title} (-{t.days_before_release}d)" for t in templates_map[name])
        typer.echo(f"- {name}: {steps}")


@app.command("generate")
def generate(
    project_type: str = typer.Option(..., "--type", help="Release type: single|ep|album"),
    release_date: str = typer.Option(..., "--release-date", help="Target release date (ISO-8601)"),
    project_id: str = typer.Option(..., "--project-id", help="Project id; prefixes milestone ids"),
    out: str = typer.Option(..., "--out", help="Path to write the project YAML"),
    name: Optional[str] = typer.Option(None, "--name", help="Project name (default: project id)"),
    budget: Optional[float] = typer.Option(None, "--budget", help="Project budget (default: type baseline)"),
    template_file: Optional[str] = typer.Option(
        None,
        "--template-file",
        help="Optional YAML file to add/override templates",
    ),
) -> None:
    """Generate a milestone plan from the release-type templates."""
    if project_type not in ALLOWED_PROJECT_TYPES:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_GENERATE_UNKNOWN_TYPE",
                    message=f"unknown type: {project_type} (choose one of: {', '.join(sorted(ALLOWED_PROJECT_TYPES))})",
                    path="type",
                )
            ]
        )
        raise typer.Exit(code=2)

    when = parse_datetime(release_date)
    if when is None:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_INVALID_DATE",
                    message=f"release date is not an ISO-8601 date: {release_date}",
                    path="release_date",
                )
            ]
        )
        raise typer.Exit(code=2)

    settings = _settings(template_file=template_file)
    templates_map = _load_templates(settings.template_file)

    project = Project(
        id=project_id,
        name=name or project_id,
        type=project_type,  # type: ignore[arg-type]
        release_date=when,
        budget=budget if budget is not None else PROJECT_BUDGETS[project_type],
    )
    milestones = generate_milestones(project.type, when, project_id, templates=templates_map)
    session = ProjectSession(project, milestones, window_days=settings.timeline_window_days)

    dump_project_yaml(project_document(project, session.store.all()), out)
    typer.echo(f"OK: wrote {len(milestones)} milestones to {out}")


@app.command("summary")
def summary(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Financial summary, risk score and critical paths of a project."""
    _check_format(format, "E_SUMMARY_UNKNOWN_FORMAT")
    graph, session = _open_session(path)
    snapshot = session.snapshot()
    fin = snapshot.financial_summary
    structural = session.engine().get_critical_path()

    compression = calculate_timeline_compression(graph.milestones)
    impact = calculate_compression_impact(graph.milestones, graph.project.type) if graph.project else None
    budget_check = (
        validate_budget(fin.total_budget, graph.project.type) if graph.project else None
    )

    if format == "json":
        payload: dict[str, Any] = {
            "tool": "release-compass",
            "command": "summary",
            "financial_summary": summary_to_dict(fin),
            "structural_critical_path": structural,
            "timeline_compression": compression,
            "timeline_start": to_iso(snapshot.timeline_start),
            "timeline_end": to_iso(snapshot.timeline_end),
            "compression_impact": (
                {"level": impact.level, "revenue_impact": impact.revenue_impact, "message": impact.message}
                if impact
                else None
            ),
            "budget_check": (
                {
                    "is_valid": budget_check.is_valid,
                    "message": budget_check.message,
                    "percentage_of_baseline": budget_check.percentage_of_baseline,
                }
                if budget_check
                else None
            ),
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Total budget: {fin.total_budget:,.2f}")
    typer.echo(f"Actual cost: {fin.total_actual_cost:,.2f}")
    typer.echo(f"Projected overrun: {fin.projected_overrun:,.2f}")
    typer.echo(f"Risk score: {fin.risk_score}/100")
    typer.echo(f"Timeline compression: {compression}")
    typer.echo("Risk critical path: " + (", ".join(fin.critical_path) or "-"))
    typer.echo("Structural critical path: " + (" -> ".join(structural) or "-"))
    if impact is not None:
        typer.echo(f"Compression impact: {impact.level}: {impact.message}")
    if budget_check is not None:
        typer.echo(f"Budget: {budget_check.message}")


@app.command("critical-path")
def critical_path(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
) -> None:
    """Print the longest dependency chain, earliest milestone first."""
    _, session = _open_session(path)
    chain = session.engine().get_critical_path()
    for mid in chain:
        m = session.store.get(mid)
        assert m is not None
        typer.echo(f"{to_iso(m.date)}  {mid}  {m.title}")


@app.command("move")
def move(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    milestone_id: str = typer.Argument(..., help="Milestone to move"),
    new_date: str = typer.Argument(..., help="New date (ISO-8601)"),
    cascade: bool = typer.Option(True, "--cascade/--no-cascade", help="Shift dependents by the same amount"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated project YAML here"),
) -> None:
    """Move a milestone, cascading the shift to everything that depends on it."""
    when = parse_datetime(new_date)
    if when is None:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_INVALID_DATE",
                    message=f"new date is not an ISO-8601 date: {new_date}",
                    path="new_date",
                )
            ]
        )
        raise typer.Exit(code=2)

    graph, session = _open_session(path)
    try:
        result = session.move_milestone(milestone_id, when, cascade=cascade)
    except CompassError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    typer.echo(f"OK: moved {milestone_id} to {to_iso(when)}")
    for u in result.updates:
        typer.echo(f"  {u.milestone_id} -> {to_iso(u.new_date)}")
    if out:
        dump_project_yaml(project_document(graph.project, session.store.all()), out)
        typer.echo(f"OK: wrote {out}")


@app.command("link")
def link(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    milestone_id: str = typer.Argument(..., help="Milestone that gains the dependency"),
    dependency_id: str = typer.Argument(..., help="Milestone it will depend on"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the updated project YAML here"),
) -> None:
    """Add a dependency edge, refusing cycles and ordering violations."""
    graph, session = _open_session(path)
    try:
        session.add_dependency(milestone_id, dependency_id)
    except CompassError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    typer.echo(f"OK: {milestone_id} now depends on {dependency_id}")
    if out:
        dump_project_yaml(project_document(graph.project, session.store.all()), out)
        typer.echo(f"OK: wrote {out}")


@app.command("apply")
def apply(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    intents: str = typer.Argument(..., help="YAML/JSON list of intent messages, applied in order"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the resulting project YAML here"),
) -> None:
    """Apply transport intents one at a time and print each result as JSON."""
    graph, session = _open_session(path)

    try:
        messages = _load_intents(intents)
    except ProjectLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    results = [session.handle_intent(m) for m in messages]
    payload = {
        "tool": "release-compass",
        "command": "apply",
        "ok": all(r.ok for r in results),
        "results": [
            {"type": r.intent, "ok": r.ok, "errors": r.errors, "updates": r.to_dict()["updates"]}
            for r in results
        ],
        "financial_summary": summary_to_dict(session.snapshot().financial_summary),
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))

    if out:
        dump_project_yaml(project_document(session.project, session.store.all()), out)
    if not payload["ok"]:
        raise typer.Exit(code=2)


def _open_session(path: str) -> tuple[ProjectGraph, ProjectSession]:
    try:
        doc = load_project(path)
    except ProjectLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    graph, errors = validate_project(doc)
    if errors or graph is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    settings = _settings()
    try:
        session = ProjectSession(graph.project, graph.milestones, window_days=settings.timeline_window_days)
    except CompassError as e:
        _print_errors([_with_file(e, doc.get("__file__"))])
        raise typer.Exit(code=2)
    return graph, session


def _settings(**overrides: Optional[str]) -> Settings:
    try:
        return load_settings(**overrides)
    except ValueError as e:
        _print_errors([ProjectValidationError(code="E_CONFIG_INVALID", message=str(e), path="settings")])
        raise typer.Exit(code=2)


def _load_intents(path: str) -> list[dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        raise ProjectLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ProjectLoadError(code="E_YAML_PARSE", message=str(e), file=str(p)) from e
    if not isinstance(data, list) or not all(isinstance(m, dict) for m in data):
        raise ProjectLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="intents file must be a list of message objects",
            file=str(p),
        )
    return data


def _load_templates(template_file: Optional[str]) -> dict[str, list[MilestoneTemplate]]:
    try:
        return load_and_merge(template_file)
    except FileNotFoundError:
        _print_errors(
            [
                ProjectLoadError(
                    code="E_TEMPLATE_FILE_NOT_FOUND",
                    message=f"template file not found: {template_file}",
                    path="template_file",
                )
            ]
        )
        raise typer.Exit(code=1)
    except TemplateConfigError as e:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_TEMPLATE_FILE_INVALID",
                    message=str(e),
                    path="template_file",
                )
            ]
        )
        raise typer.Exit(code=2)


def _check_format(format: str, code: str) -> None:
    if format not in ("text", "json"):
        err = ProjectValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: text, json)",
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _to_item(e: CompassError) -> dict:
    if isinstance(e, ProjectLoadError):
        source = "load"
    elif e.code.startswith("L_"):
        source = "lint"
    else:
        source = "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _with_file(e: CompassError, file: Any) -> CompassError:
    if e.file or not isinstance(file, str):
        return e
    if isinstance(e, DependencyValidationError):
        return DependencyValidationError(
            code=e.code, message=e.message, file=file, path=e.path, violations=e.violations
        )
    return type(e)(code=e.code, message=e.message, file=file, path=e.path)


def _print_errors(errors: list[CompassError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="release-compass")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
