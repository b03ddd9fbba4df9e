from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional


RiskLevel = Literal["low", "medium", "high"]
MilestoneStatus = Literal["planned", "in-progress", "completed", "overdue"]
Category = Literal["recording", "production", "marketing", "distribution", "legal", "other"]
ProjectType = Literal["single", "ep", "album"]

ALLOWED_RISK_LEVELS: set[str] = {"low", "medium", "high"}
ALLOWED_STATUSES: set[str] = {"planned", "in-progress", "completed", "overdue"}
ALLOWED_CATEGORIES: set[str] = {
    "recording",
    "production",
    "marketing",
    "distribution",
    "legal",
    "other",
}
ALLOWED_PROJECT_TYPES: set[str] = {"single", "ep", "album"}


@dataclass(frozen=True)
class Milestone:
    id: str
    title: str
    date: datetime
    budget: float
    actual_cost: float
    risk_level: RiskLevel
    status: MilestoneStatus
    dependencies: list[str]
    category: Category

    notes: Optional[str] = None
    # Display coordinates, derived from date and timeline bounds.
    timeline_position: float = 0.0
    radial_position: float = 0.0


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    type: ProjectType
    release_date: datetime
    budget: float
    description: Optional[str] = None


@dataclass(frozen=True)
class FinancialSummary:
    total_budget: float
    total_actual_cost: float
    projected_overrun: float
    risk_score: int
    critical_path: list[str]  # risk-flagged milestone ids, by date
    last_updated: datetime


@dataclass(frozen=True)
class DependencyUpdate:
    milestone_id: str
    new_date: datetime
    reason: str = "dependency cascade"


@dataclass(frozen=True)
class DependencyCheck:
    valid: bool
    violations: list[str]


@dataclass(frozen=True)
class TimelineBounds:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class DependencyLine:
    from_id: str
    from_position: Point
    to_id: str
    to_position: Point


@dataclass(frozen=True)
class ProjectGraph:
    schema_version: str
    project: Optional[Project]
    milestones: list[Milestone]


@dataclass(frozen=True)
class TimelineSnapshot:
    milestones: dict[str, Milestone]
    financial_summary: FinancialSummary
    timeline_start: datetime
    timeline_end: datetime
    project: Optional[Project] = None
