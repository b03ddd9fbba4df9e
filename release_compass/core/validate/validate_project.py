from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Optional, cast

from release_compass.core.errors import ProjectValidationError, RangeError
from release_compass.core.io.codec import normalize_keys
from release_compass.core.io.dates import parse_datetime
from release_compass.core.model import (
    ALLOWED_CATEGORIES,
    ALLOWED_PROJECT_TYPES,
    ALLOWED_RISK_LEVELS,
    ALLOWED_STATUSES,
    Category,
    Milestone,
    MilestoneStatus,
    Project,
    ProjectGraph,
    ProjectType,
    RiskLevel,
)


def _is_list_of_str(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def validate_milestone(
    raw: Any,
    *,
    file: Optional[str] = None,
    path: str = "milestone",
) -> tuple[Optional[Milestone], list[ProjectValidationError]]:
    """Validate one milestone mapping (file or wire keys).

    Reports every field problem found. Referential checks (unknown or
    duplicate ids) belong to the caller, which knows the whole set.
    """

    errors: list[ProjectValidationError] = []
    if not isinstance(raw, dict):
        errors.append(
            ProjectValidationError(
                code="E_INVALID_TYPE",
                message="milestone must be an object",
                file=file,
                path=path,
            )
        )
        return None, errors

    data = normalize_keys(raw)

    def _err(cls: type[ProjectValidationError], code: str, message: str, field: str) -> None:
        errors.append(cls(code=code, message=message, file=file, path=f"{path}.{field}"))

    mid = data.get("id")
    if not isinstance(mid, str) or not mid.strip():
        _err(ProjectValidationError, "E_REQUIRED_FIELD", "id is required and must be a non-empty string", "id")

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        _err(ProjectValidationError, "E_REQUIRED_FIELD", "title is required and must be a non-empty string", "title")

    when = parse_datetime(data.get("date"))
    if data.get("date") is None:
        _err(ProjectValidationError, "E_REQUIRED_FIELD", "date is required", "date")
    elif when is None:
        _err(ProjectValidationError, "E_INVALID_DATE", f"date is not an ISO-8601 date: {data.get('date')!r}", "date")

    amounts: dict[str, float] = {}
    for field, required in (("budget", True), ("actual_cost", False)):
        value = data.get(field)
        if value is None:
            if required:
                _err(ProjectValidationError, "E_REQUIRED_FIELD", f"{field} is required", field)
            amounts[field] = 0.0
            continue
        if not _is_number(value):
            _err(ProjectValidationError, "E_INVALID_TYPE", f"{field} must be a number", field)
            continue
        if value < 0:
            _err(RangeError, "E_NEGATIVE_AMOUNT", f"{field} must be >= 0, got {value}", field)
            continue
        amounts[field] = float(value)

    enums = (
        ("risk_level", ALLOWED_RISK_LEVELS, None),
        ("status", ALLOWED_STATUSES, "planned"),
        ("category", ALLOWED_CATEGORIES, "other"),
    )
    enum_values: dict[str, str] = {}
    for field, allowed, default in enums:
        value = data.get(field, default)
        if not isinstance(value, str) or value not in allowed:
            _err(RangeError, "E_INVALID_ENUM", f"{field} must be one of {sorted(allowed)}", field)
            continue
        enum_values[field] = value

    deps = data.get("dependencies", [])
    if deps is None:
        deps = []
    if not _is_list_of_str(deps):
        _err(ProjectValidationError, "E_INVALID_TYPE", "dependencies must be an array of strings", "dependencies")
    elif isinstance(mid, str) and mid in deps:
        _err(ProjectValidationError, "E_SELF_DEPENDENCY", f"milestone cannot depend on itself: {mid}", "dependencies")

    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        _err(ProjectValidationError, "E_INVALID_TYPE", "notes must be a string", "notes")

    positions: dict[str, float] = {}
    for field in ("timeline_position", "radial_position"):
        value = data.get(field, 0.0)
        if not _is_number(value):
            _err(ProjectValidationError, "E_INVALID_TYPE", f"{field} must be a number", field)
            continue
        positions[field] = float(value)

    if errors:
        return None, _sorted(errors)

    milestone = Milestone(
        id=cast(str, mid),
        title=cast(str, title),
        date=cast(Any, when),
        budget=amounts["budget"],
        actual_cost=amounts["actual_cost"],
        risk_level=cast(RiskLevel, enum_values["risk_level"]),
        status=cast(MilestoneStatus, enum_values["status"]),
        dependencies=list(dict.fromkeys(cast(list[str], deps))),
        category=cast(Category, enum_values["category"]),
        notes=cast(Optional[str], notes),
        timeline_position=positions["timeline_position"],
        radial_position=positions["radial_position"],
    )
    return milestone, []


def validate_project_meta(
    raw: Any,
    *,
    file: Optional[str] = None,
    path: str = "project",
) -> tuple[Optional[Project], list[ProjectValidationError]]:
    errors: list[ProjectValidationError] = []
    if not isinstance(raw, dict):
        errors.append(
            ProjectValidationError(
                code="E_INVALID_TYPE",
                message="project must be an object",
                file=file,
                path=path,
            )
        )
        return None, errors

    data = normalize_keys(raw)

    for field in ("id", "name"):
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(
                ProjectValidationError(
                    code="E_REQUIRED_FIELD",
                    message=f"{field} is required and must be a non-empty string",
                    file=file,
                    path=f"{path}.{field}",
                )
            )

    ptype = data.get("type")
    if not isinstance(ptype, str) or ptype not in ALLOWED_PROJECT_TYPES:
        errors.append(
            RangeError(
                code="E_INVALID_ENUM",
                message=f"type must be one of {sorted(ALLOWED_PROJECT_TYPES)}",
                file=file,
                path=f"{path}.type",
            )
        )

    release = parse_datetime(data.get("release_date"))
    if release is None:
        errors.append(
            ProjectValidationError(
                code="E_INVALID_DATE",
                message="release_date is required and must be an ISO-8601 date",
                file=file,
                path=f"{path}.release_date",
            )
        )

    budget = data.get("budget", 0)
    if not _is_number(budget):
        errors.append(
            ProjectValidationError(
                code="E_INVALID_TYPE",
                message="budget must be a number",
                file=file,
                path=f"{path}.budget",
            )
        )
    elif budget < 0:
        errors.append(
            RangeError(
                code="E_NEGATIVE_AMOUNT",
                message=f"budget must be >= 0, got {budget}",
                file=file,
                path=f"{path}.budget",
            )
        )

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        errors.append(
            ProjectValidationError(
                code="E_INVALID_TYPE",
                message="description must be a string",
                file=file,
                path=f"{path}.description",
            )
        )

    if errors:
        return None, _sorted(errors)

    return (
        Project(
            id=cast(str, data["id"]),
            name=cast(str, data["name"]),
            type=cast(ProjectType, ptype),
            release_date=cast(Any, release),
            budget=float(budget),
            description=cast(Optional[str], description),
        ),
        [],
    )


def validate_references(
    milestones: Iterable[Milestone],
    *,
    file: Optional[str] = None,
    path_of: Optional[dict[str, str]] = None,
) -> list[ProjectValidationError]:
    """Duplicate ids and dependencies that name no milestone in the set."""

    milestones = list(milestones)
    path_of = path_of or {}
    errors: list[ProjectValidationError] = []

    counts = Counter(m.id for m in milestones)
    reported: set[str] = set()
    for m in milestones:
        if counts[m.id] > 1 and m.id not in reported:
            reported.add(m.id)
            errors.append(
                ProjectValidationError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate milestone id: {m.id}",
                    file=file,
                    path=f"{path_of.get(m.id, 'milestones')}.id",
                )
            )

    all_ids = set(counts.keys())
    for m in milestones:
        for di, dep in enumerate(m.dependencies):
            if dep not in all_ids:
                errors.append(
                    ProjectValidationError(
                        code="E_UNKNOWN_DEPENDENCY",
                        message=f"dependencies references unknown id: {dep}",
                        file=file,
                        path=f"{path_of.get(m.id, 'milestones')}.dependencies[{di}]",
                    )
                )
    return errors


def validate_project(doc: dict[str, Any]) -> tuple[Optional[ProjectGraph], list[ProjectValidationError]]:
    """Validate a loaded project document.

    Returns (graph, errors). Graph is None when errors exist.
    """

    file = cast(Optional[str], doc.get("__file__"))
    errors: list[ProjectValidationError] = []

    schema_version = doc.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errors.append(
            ProjectValidationError(
                code="E_REQUIRED_FIELD",
                message="schema_version is required and must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    project: Optional[Project] = None
    if doc.get("project") is not None:
        project, project_errors = validate_project_meta(doc.get("project"), file=file)
        errors.extend(project_errors)

    raw_milestones = doc.get("milestones")
    if not isinstance(raw_milestones, list):
        errors.append(
            ProjectValidationError(
                code="E_REQUIRED_FIELD",
                message="milestones is required and must be an array",
                file=file,
                path="milestones",
            )
        )
        return None, _sorted(errors)

    milestones: list[Milestone] = []
    path_of: dict[str, str] = {}
    for i, raw in enumerate(raw_milestones):
        m, m_errors = validate_milestone(raw, file=file, path=f"milestones[{i}]")
        errors.extend(m_errors)
        if m is not None:
            milestones.append(m)
            path_of.setdefault(m.id, f"milestones[{i}]")

    errors.extend(validate_references(milestones, file=file, path_of=path_of))

    if errors:
        return None, _sorted(errors)

    return ProjectGraph(schema_version=cast(str, schema_version), project=project, milestones=milestones), []


def summarize_project(graph: ProjectGraph) -> str:
    counts = Counter(m.status for m in graph.milestones)
    ordered: list[str] = ["planned", "in-progress", "completed", "overdue"]
    parts = [f"{s}={counts.get(s, 0)}" for s in ordered]
    edges = sum(len(m.dependencies) for m in graph.milestones)
    head = f"OK: {len(graph.milestones)} milestones (" + ", ".join(parts) + f"), {edges} dependencies"
    if graph.project is None:
        return head
    return head + f"\nProject: {graph.project.name} ({graph.project.type})"


def _sorted(errors: Iterable[ProjectValidationError]) -> list[ProjectValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
