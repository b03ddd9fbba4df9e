from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from release_compass.core.errors import ProjectValidationError
from release_compass.core.finance.financial_engine import calculate_timeline_compression, validate_budget
from release_compass.core.graph.dependency_engine import DependencyEngine, detect_cycles
from release_compass.core.validate.validate_project import validate_project


# Release plan lint rules:
# - L_DUPLICATE_ID: duplicate milestone ids
# - L_CYCLE_DETECTED: dependency cycle exists
# - L_DATE_ORDER: a milestone is scheduled before one of its dependencies
# - L_BUDGET_OUT_OF_RANGE: summed milestone budgets outside 80%-150% of the release-type baseline
# - L_TIMELINE_COMPRESSED: milestones packed closer than two weeks apart on average

COMPRESSION_LINT_THRESHOLD = 50


def lint_project(doc: dict[str, Any]) -> list[ProjectValidationError]:
    """Lint a project document.

    Lint runs *in addition to* schema validation. Duplicate ids and cycles are
    checked on the raw document (best effort); the date, budget and spacing
    rules need a document that validates and are skipped otherwise.
    """

    file = _cast_optional_str(doc.get("__file__"))

    raw_milestones = doc.get("milestones")
    if not isinstance(raw_milestones, list):
        # Let validator handle shape.
        return []

    id_to_index: dict[str, int] = {}
    id_to_deps: dict[str, list[str]] = {}
    ids: list[str] = []
    for i, raw in enumerate(raw_milestones):
        if not isinstance(raw, dict):
            continue
        mid = raw.get("id")
        if not isinstance(mid, str):
            continue
        ids.append(mid)
        id_to_index.setdefault(mid, i)
        deps_raw = raw.get("dependencies")
        deps = [d for d in deps_raw if isinstance(d, str)] if isinstance(deps_raw, list) else []
        id_to_deps.setdefault(mid, deps)

    errors: list[ProjectValidationError] = []

    # Rule: duplicate IDs
    counts = Counter(ids)
    seen: set[str] = set()
    for i, raw in enumerate(raw_milestones):
        if not isinstance(raw, dict):
            continue
        mid = raw.get("id")
        if not isinstance(mid, str) or counts[mid] < 2:
            continue
        if mid not in seen:
            seen.add(mid)
            continue
        errors.append(
            ProjectValidationError(
                code="L_DUPLICATE_ID",
                message=f"duplicate milestone id: {mid} (count={counts[mid]})",
                file=file,
                path=f"milestones[{i}].id",
            )
        )

    # Rule: cycle detection
    for mid, cycle in detect_cycles(id_to_deps):
        errors.append(
            ProjectValidationError(
                code="L_CYCLE_DETECTED",
                message="dependency cycle detected: " + " -> ".join(cycle),
                file=file,
                path=f"milestones[{id_to_index.get(mid, 0)}].dependencies",
            )
        )

    graph, validation_errors = validate_project(doc)
    if graph is None or validation_errors:
        return _sorted(errors)

    # Rule: ordering
    engine = DependencyEngine(graph.milestones)
    for m in graph.milestones:
        for dep_id in engine.dependencies_of(m.id):
            dep = engine.get(dep_id)
            if dep is not None and m.date < dep.date:
                errors.append(
                    ProjectValidationError(
                        code="L_DATE_ORDER",
                        message=f"{m.id} is scheduled before its dependency {dep_id}",
                        file=file,
                        path=f"milestones[{id_to_index.get(m.id, 0)}].date",
                    )
                )

    # Rule: budget against release type baseline
    if graph.project is not None:
        total = sum(m.budget for m in graph.milestones)
        check = validate_budget(total, graph.project.type)
        if not check.is_valid:
            errors.append(
                ProjectValidationError(
                    code="L_BUDGET_OUT_OF_RANGE",
                    message=f"{check.message} ({check.percentage_of_baseline:.0f}% of baseline)",
                    file=file,
                    path="milestones",
                )
            )

    # Rule: spacing
    score = calculate_timeline_compression(graph.milestones)
    if score >= COMPRESSION_LINT_THRESHOLD:
        errors.append(
            ProjectValidationError(
                code="L_TIMELINE_COMPRESSED",
                message=f"milestones are tightly packed (compression score {score})",
                file=file,
                path="milestones",
            )
        )

    return _sorted(errors)


def _sorted(errors: list[ProjectValidationError]) -> list[ProjectValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))


def _cast_optional_str(v: Any) -> Optional[str]:
    return v if isinstance(v, str) else None
