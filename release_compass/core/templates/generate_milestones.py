from __future__ import annotations

import math
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from release_compass.core.config import DEFAULT_TIMELINE_WINDOW_DAYS
from release_compass.core.io.dates import utc_now
from release_compass.core.model import Milestone, ProjectType, TimelineBounds
from release_compass.core.templates.template_config import DEFAULT_TEMPLATES, MilestoneTemplate
from release_compass.logging_config import get_logger

logger = get_logger("templates.generate")

BOUNDS_PADDING = 0.1


def generate_milestones(
    project_type: ProjectType,
    release_date: datetime,
    project_id: str,
    *,
    templates: dict[str, list[MilestoneTemplate]] | None = None,
) -> list[Milestone]:
    """Build the initial milestone set for a release.

    Dates are release_date minus each template's offset. Named dependencies
    resolve only to templates listed earlier for the same type; anything else
    is skipped with a warning. Ids are <project_id>-<slug(title)>-<index>.
    """

    tpl_map = templates or DEFAULT_TEMPLATES
    if project_type not in tpl_map:
        raise KeyError(f"no templates for project type: {project_type}")
    entries = tpl_map[project_type]
    if not entries:
        return []

    offsets = [t.days_before_release for t in entries]
    max_days, min_days = max(offsets), min(offsets)
    span = max_days - min_days

    ids_by_title: dict[str, str] = {}
    milestones: list[Milestone] = []
    for index, tpl in enumerate(entries):
        milestone_id = f"{project_id}-{_slug(tpl.title)}-{index}"

        dependencies: list[str] = []
        for dep_title in tpl.dependencies:
            dep_id = ids_by_title.get(dep_title)
            if dep_id is None:
                logger.warning(
                    "template %s/%s names unknown or later dependency %s; skipped",
                    project_type,
                    tpl.title,
                    dep_title,
                )
                continue
            dependencies.append(dep_id)

        milestones.append(
            Milestone(
                id=milestone_id,
                title=tpl.title,
                date=release_date - timedelta(days=tpl.days_before_release),
                budget=tpl.budget,
                actual_cost=0.0,
                risk_level=tpl.risk_level,
                status="planned",
                dependencies=dependencies,
                category=tpl.category,
                notes=tpl.description,
                timeline_position=(max_days - tpl.days_before_release) / span if span else 0.0,
                radial_position=(index / len(entries)) * math.pi * 2,
            )
        )
        ids_by_title[tpl.title] = milestone_id

    return milestones


def calculate_timeline_bounds(
    milestones: Sequence[Milestone],
    *,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_TIMELINE_WINDOW_DAYS,
) -> TimelineBounds:
    """Earliest/latest milestone date padded by 10% of the span on each side.

    An empty set yields [now, now + window_days].
    """
    if not milestones:
        start = now or utc_now()
        return TimelineBounds(start=start, end=start + timedelta(days=window_days))

    first = min(m.date for m in milestones)
    last = max(m.date for m in milestones)
    padding = (last - first) * BOUNDS_PADDING
    return TimelineBounds(start=first - padding, end=last + padding)


def calculate_timeline_position(when: datetime, start: datetime, end: datetime) -> float:
    total = (end - start).total_seconds()
    if total <= 0:
        return 0.0
    offset = (when - start).total_seconds()
    return max(0.0, min(1.0, offset / total))


def reposition(milestones: Sequence[Milestone], bounds: TimelineBounds) -> list[Milestone]:
    """Recompute timeline_position for every milestone against bounds."""
    return [
        replace(m, timeline_position=calculate_timeline_position(m.date, bounds.start, bounds.end))
        for m in milestones
    ]


def _slug(title: str) -> str:
    return re.sub(r"\s+", "-", title.strip().lower())
