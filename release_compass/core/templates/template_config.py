from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, cast

import yaml

from release_compass.core.model import (
    ALLOWED_CATEGORIES,
    ALLOWED_PROJECT_TYPES,
    ALLOWED_RISK_LEVELS,
    Category,
    RiskLevel,
)


@dataclass(frozen=True)
class MilestoneTemplate:
    title: str
    days_before_release: int
    budget: float
    category: Category
    risk_level: RiskLevel
    # Titles of earlier templates in the same list.
    dependencies: list[str] = field(default_factory=list)
    description: Optional[str] = None


def _t(
    title: str,
    days: int,
    budget: float,
    category: Category,
    risk: RiskLevel,
    deps: Optional[list[str]] = None,
    description: Optional[str] = None,
) -> MilestoneTemplate:
    return MilestoneTemplate(
        title=title,
        days_before_release=days,
        budget=budget,
        category=category,
        risk_level=risk,
        dependencies=deps or [],
        description=description,
    )


DEFAULT_TEMPLATES: dict[str, list[MilestoneTemplate]] = {
    "single": [
        _t("Recording", 60, 500, "recording", "medium", None, "Studio recording sessions for single track"),
        _t("Mixing", 45, 300, "production", "low", ["Recording"], "Professional mixing of recorded tracks"),
        _t("Mastering", 30, 200, "production", "low", ["Mixing"], "Final mastering for all platforms"),
        _t("Artwork", 21, 300, "marketing", "low", None, "Single cover artwork and design"),
        _t("Release", 0, 200, "distribution", "low", ["Mastering", "Artwork"], "Distribution to all streaming platforms"),
    ],
    "ep": [
        _t("Recording", 90, 2000, "recording", "medium", None, "Studio sessions for 3-6 tracks"),
        _t("Mixing", 60, 1200, "production", "medium", ["Recording"], "Professional mixing of all EP tracks"),
        _t("Mastering", 45, 800, "production", "low", ["Mixing"], "EP mastering and sequencing"),
        _t("Artwork", 30, 500, "marketing", "low", None, "EP cover art and packaging design"),
        _t("Distribution", 14, 500, "distribution", "low", ["Mastering"], "Distribution setup and metadata"),
        _t("Release", 0, 1500, "distribution", "medium", ["Distribution", "Artwork"], "EP launch and promotion"),
    ],
    "album": [
        _t("Pre-production", 180, 2000, "production", "low", None, "Song selection, arrangements, and demos"),
        _t("Recording", 150, 8000, "recording", "high", ["Pre-production"], "Full album recording sessions"),
        _t("Mixing", 90, 4000, "production", "medium", ["Recording"], "Professional mixing of all album tracks"),
        _t("Mastering", 60, 2000, "production", "low", ["Mixing"], "Album mastering and final sequencing"),
        _t("Artwork", 45, 1500, "marketing", "medium", None, "Album artwork, photography, and design"),
        _t("Video", 30, 3000, "marketing", "high", ["Mastering"], "Music video production for lead single"),
        _t("PR Campaign", 21, 2500, "marketing", "medium", ["Artwork", "Video"], "Press release, media outreach, interviews"),
        _t("Distribution", 14, 1000, "distribution", "low", ["Mastering", "Artwork"], "Physical and digital distribution setup"),
        _t("Release", 0, 2000, "distribution", "medium", ["Distribution", "PR Campaign"], "Album launch event and promotion"),
    ],
}


class TemplateConfigError(ValueError):
    pass


def load_template_file(path: str | Path) -> dict[str, list[MilestoneTemplate]]:
    """Load milestone templates from a YAML file.

    Format:
      <project type>:
        - title: Recording
          days_before_release: 60
          budget: 500
          category: recording
          risk_level: medium
          dependencies: []        # optional, titles of earlier entries
          description: "..."      # optional

    Returns a mapping of project type -> ordered templates.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TemplateConfigError("template file must be a mapping of project type -> list of templates")

    out: dict[str, list[MilestoneTemplate]] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or k.strip() not in ALLOWED_PROJECT_TYPES:
            raise TemplateConfigError(f"template keys must be one of {sorted(ALLOWED_PROJECT_TYPES)}, got {k!r}")
        if not isinstance(v, list) or not v:
            raise TemplateConfigError(f"template '{k}' must be a non-empty list")
        name = k.strip()
        templates: list[MilestoneTemplate] = []
        for i, item in enumerate(v):
            templates.append(_parse_template(name, i, item, seen=[t.title for t in templates]))
        out[name] = templates
    return out


def merged_templates(
    overrides: dict[str, list[MilestoneTemplate]] | None = None,
) -> dict[str, list[MilestoneTemplate]]:
    """Return DEFAULT_TEMPLATES merged with optional overrides.

    An override replaces the whole template list of its project type.
    """
    merged = {k: list(v) for k, v in DEFAULT_TEMPLATES.items()}
    if overrides:
        for k, v in overrides.items():
            merged[k] = list(v)
    return merged


def load_and_merge(template_file: str | None) -> dict[str, list[MilestoneTemplate]]:
    if not template_file:
        return merged_templates()
    overrides = load_template_file(template_file)
    return merged_templates(overrides)


def _parse_template(ptype: str, index: int, item: Any, *, seen: list[str]) -> MilestoneTemplate:
    where = f"template '{ptype}'[{index}]"
    if not isinstance(item, dict):
        raise TemplateConfigError(f"{where} must be a mapping")

    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        raise TemplateConfigError(f"{where}.title must be a non-empty string")
    title = title.strip()
    if title in seen:
        raise TemplateConfigError(f"{where}.title duplicates an earlier entry: {title}")

    days = item.get("days_before_release")
    if not isinstance(days, int) or isinstance(days, bool) or days < 0:
        raise TemplateConfigError(f"{where}.days_before_release must be a non-negative integer")

    budget = item.get("budget")
    if not isinstance(budget, (int, float)) or isinstance(budget, bool) or budget < 0:
        raise TemplateConfigError(f"{where}.budget must be a non-negative number")

    category = item.get("category", "other")
    if category not in ALLOWED_CATEGORIES:
        raise TemplateConfigError(f"{where}.category must be one of {sorted(ALLOWED_CATEGORIES)}")

    risk = item.get("risk_level", "low")
    if risk not in ALLOWED_RISK_LEVELS:
        raise TemplateConfigError(f"{where}.risk_level must be one of {sorted(ALLOWED_RISK_LEVELS)}")

    deps = item.get("dependencies") or []
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise TemplateConfigError(f"{where}.dependencies must be a list of titles")
    for d in deps:
        if d not in seen:
            raise TemplateConfigError(f"{where}.dependencies names '{d}', which is not an earlier entry")

    description = item.get("description")
    if description is not None and not isinstance(description, str):
        raise TemplateConfigError(f"{where}.description must be a string")

    return MilestoneTemplate(
        title=title,
        days_before_release=days,
        budget=float(budget),
        category=cast(Category, category),
        risk_level=cast(RiskLevel, risk),
        dependencies=list(deps),
        description=description,
    )
