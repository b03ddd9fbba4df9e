"""Dict encoders for project files (snake_case) and broadcast messages (camelCase)."""

from __future__ import annotations

from typing import Any, Optional

from release_compass.core.io.dates import to_iso
from release_compass.core.model import FinancialSummary, Milestone, Project, TimelineSnapshot


SCHEMA_VERSION = "0.1.0"

# wire (camelCase) -> file (snake_case)
FIELD_ALIASES: dict[str, str] = {
    "actualCost": "actual_cost",
    "riskLevel": "risk_level",
    "timelinePosition": "timeline_position",
    "radialPosition": "radial_position",
    "releaseDate": "release_date",
    "milestoneId": "milestone_id",
}

_WIRE_NAMES: dict[str, str] = {v: k for k, v in FIELD_ALIASES.items()}
_WIRE_NAMES.update(
    {
        "total_budget": "totalBudget",
        "total_actual_cost": "totalActualCost",
        "projected_overrun": "projectedOverrun",
        "risk_score": "riskScore",
        "critical_path": "criticalPath",
        "last_updated": "lastUpdated",
    }
)


# top-level keys of a broadcast state (snapshot_to_dict) -> project document
DOCUMENT_ALIASES: dict[str, str] = {
    "schemaVersion": "schema_version",
    "currentProject": "project",
}


def normalize_keys(raw: dict[str, Any], aliases: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """Return a copy of raw with camelCase aliases renamed; snake_case wins on conflict."""
    table = FIELD_ALIASES if aliases is None else aliases
    out: dict[str, Any] = {}
    for k, v in raw.items():
        key = table.get(k, k) if isinstance(k, str) else k
        if key in out and key != k:
            continue
        out[key] = v
    return out


def milestone_to_dict(m: Milestone, *, wire: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": m.id,
        "title": m.title,
        "date": to_iso(m.date),
        "budget": m.budget,
        "actual_cost": m.actual_cost,
        "risk_level": m.risk_level,
        "status": m.status,
        "dependencies": list(m.dependencies),
        "category": m.category,
    }
    if m.notes is not None:
        data["notes"] = m.notes
    data["timeline_position"] = m.timeline_position
    data["radial_position"] = m.radial_position
    return _rename(data) if wire else data


def project_to_dict(p: Project, *, wire: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": p.id,
        "name": p.name,
        "type": p.type,
        "release_date": to_iso(p.release_date),
        "budget": p.budget,
    }
    if p.description is not None:
        data["description"] = p.description
    return _rename(data) if wire else data


def summary_to_dict(s: FinancialSummary, *, wire: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "total_budget": s.total_budget,
        "total_actual_cost": s.total_actual_cost,
        "projected_overrun": s.projected_overrun,
        "risk_score": s.risk_score,
        "critical_path": list(s.critical_path),
        "last_updated": to_iso(s.last_updated),
    }
    return _rename(data) if wire else data


def project_document(
    project: Optional[Project],
    milestones: list[Milestone],
    *,
    schema_version: str = SCHEMA_VERSION,
) -> dict[str, Any]:
    return {
        "schema_version": schema_version,
        "project": project_to_dict(project) if project is not None else None,
        "milestones": [milestone_to_dict(m) for m in milestones],
    }


def snapshot_to_dict(snapshot: TimelineSnapshot) -> dict[str, Any]:
    state: dict[str, Any] = {
        "milestones": {mid: milestone_to_dict(m, wire=True) for mid, m in snapshot.milestones.items()},
        "financialSummary": summary_to_dict(snapshot.financial_summary, wire=True),
        "timelineStart": to_iso(snapshot.timeline_start),
        "timelineEnd": to_iso(snapshot.timeline_end),
    }
    if snapshot.project is not None:
        state["currentProject"] = project_to_dict(snapshot.project, wire=True)
    return state


def timeline_sync_message(snapshot: TimelineSnapshot) -> dict[str, Any]:
    return {"type": "timeline-sync", "state": snapshot_to_dict(snapshot)}


def financial_update_message(summary: FinancialSummary) -> dict[str, Any]:
    return {"type": "financial-update", "financialSummary": summary_to_dict(summary, wire=True)}


def milestone_update_message(m: Milestone) -> dict[str, Any]:
    return {"type": "milestone-update", "milestone": milestone_to_dict(m, wire=True)}


def milestone_delete_message(milestone_id: str) -> dict[str, Any]:
    return {"type": "milestone-delete", "milestoneId": milestone_id}


def project_update_message(p: Project) -> dict[str, Any]:
    return {"type": "project-update", "project": project_to_dict(p, wire=True)}


def _rename(data: dict[str, Any]) -> dict[str, Any]:
    return {_WIRE_NAMES.get(k, k): v for k, v in data.items()}
