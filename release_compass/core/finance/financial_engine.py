"""Budget and risk figures derived from a milestone snapshot.

Every function here is pure: no clock reads except where a timestamp is part of
the result (calculate_financial_summary accepts one), and inputs are never
mutated.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from release_compass.core.io.dates import days_between, utc_now
from release_compass.core.model import FinancialSummary, Milestone, ProjectType


# Typical all-in cost per release type.
PROJECT_BUDGETS: dict[str, float] = {
    "single": 1500.0,
    "ep": 6500.0,
    "album": 25000.0,
}

RISK_LEVEL_SCORES: dict[str, int] = {"high": 100, "medium": 50, "low": 10}

RISK_LEVEL_WEIGHT = 0.4
COMPRESSION_WEIGHT = 0.3
OVERRUN_WEIGHT = 0.3

# 50% overrun of the total budget maxes the overrun sub-score.
OVERRUN_SCORE_FACTOR = 200.0


@dataclass(frozen=True)
class CompressionLevel:
    name: str
    threshold: float  # fraction; compared against score / 100
    impact: float  # fraction of the baseline budget


# Checked in this order; the first threshold met wins.
COMPRESSION_LEVELS: tuple[CompressionLevel, ...] = (
    CompressionLevel(name="severe", threshold=0.50, impact=0.30),
    CompressionLevel(name="moderate", threshold=0.70, impact=0.15),
    CompressionLevel(name="mild", threshold=0.85, impact=0.05),
)

BUDGET_MIN_RATIO = 0.8
BUDGET_MAX_RATIO = 1.5


@dataclass(frozen=True)
class CompressionImpact:
    level: str
    revenue_impact: float
    message: str


@dataclass(frozen=True)
class BudgetCheck:
    is_valid: bool
    message: str
    percentage_of_baseline: float


def calculate_financial_summary(
    milestones: Sequence[Milestone],
    *,
    now: Optional[datetime] = None,
) -> FinancialSummary:
    return FinancialSummary(
        total_budget=sum(m.budget for m in milestones),
        total_actual_cost=sum(m.actual_cost for m in milestones),
        projected_overrun=calculate_projected_overrun(milestones),
        risk_score=calculate_risk_score(milestones),
        critical_path=identify_critical_path(milestones),
        last_updated=now or utc_now(),
    )


def calculate_projected_overrun(milestones: Sequence[Milestone]) -> float:
    """Realized overrun of completed work plus projected overrun of the rest.

    The overrun rate is the mean relative overrun over all completed
    milestones (on-budget ones count as 0). In-progress milestones carry at
    least their already-realized overrun; planned ones carry budget * rate.
    The result is clamped to >= 0.
    """

    completed = [m for m in milestones if m.status == "completed"]
    in_progress = [m for m in milestones if m.status == "in-progress"]
    planned = [m for m in milestones if m.status == "planned"]

    overrun_rate = 0.0
    if completed:
        relative = [
            (m.actual_cost - m.budget) / m.budget
            for m in completed
            if m.budget > 0 and m.actual_cost > m.budget
        ]
        overrun_rate = sum(relative) / len(completed)

    realized = sum(max(0.0, m.actual_cost - m.budget) for m in completed)
    projected_in_progress = sum(
        max(m.budget * overrun_rate, m.actual_cost - m.budget) for m in in_progress
    )
    projected_planned = sum(m.budget * overrun_rate for m in planned)

    return max(0.0, realized + projected_in_progress + projected_planned)


def calculate_risk_score(milestones: Sequence[Milestone]) -> int:
    if not milestones:
        return 0

    risk_level_score = sum(RISK_LEVEL_SCORES[m.risk_level] for m in milestones) / len(milestones)
    compression_score = calculate_timeline_compression(milestones)
    overrun_score = calculate_overrun_score(milestones)

    raw = (
        risk_level_score * RISK_LEVEL_WEIGHT
        + compression_score * COMPRESSION_WEIGHT
        + overrun_score * OVERRUN_WEIGHT
    )
    return max(0, min(100, _round_half_up(raw)))


def calculate_overrun_score(milestones: Sequence[Milestone]) -> float:
    """0-100 score of total actual cost above total budget."""
    total_budget = sum(m.budget for m in milestones)
    total_actual = sum(m.actual_cost for m in milestones)
    if total_budget <= 0:
        return 0.0
    overrun_percent = max(0.0, (total_actual - total_budget) / total_budget)
    return min(100.0, overrun_percent * OVERRUN_SCORE_FACTOR)


def calculate_timeline_compression(milestones: Sequence[Milestone]) -> int:
    """Map the mean gap between consecutive milestones to a 0-100 risk band."""
    if len(milestones) < 2:
        return 0

    ordered = sorted(milestones, key=lambda m: m.date)
    gaps = [abs(days_between(a.date, b.date)) for a, b in zip(ordered, ordered[1:])]
    avg_days = sum(gaps) / len(gaps)

    if 14 <= avg_days <= 30:
        return 10
    if 7 <= avg_days < 14:
        return 50
    if avg_days < 7:
        return 90
    return 30


def identify_critical_path(milestones: Sequence[Milestone]) -> list[str]:
    """Risk-flagged milestone ids sorted by date.

    Flagged: anything another milestone depends on, any high-risk milestone,
    any overdue milestone. This is a selection, not a longest path; see
    DependencyEngine.get_critical_path for the structural one.
    """

    is_dependency: set[str] = set()
    for m in milestones:
        is_dependency.update(m.dependencies)

    flagged = [
        m
        for m in milestones
        if m.id in is_dependency or m.risk_level == "high" or m.status == "overdue"
    ]
    return [m.id for m in sorted(flagged, key=lambda m: m.date)]


def calculate_compression_impact(milestones: Sequence[Milestone], project_type: ProjectType) -> CompressionImpact:
    score = calculate_timeline_compression(milestones)
    baseline = PROJECT_BUDGETS[project_type]

    for level in COMPRESSION_LEVELS:
        if score >= level.threshold * 100:
            impact = baseline * level.impact
            return CompressionImpact(
                level=level.name,
                revenue_impact=impact,
                message=_IMPACT_MESSAGES[level.name].format(amount=_money(impact)),
            )

    return CompressionImpact(
        level="optimal",
        revenue_impact=0.0,
        message="Timeline spacing is optimal. No compression-related revenue impact.",
    )


def validate_budget(total_budget: float, project_type: ProjectType) -> BudgetCheck:
    baseline = PROJECT_BUDGETS[project_type]
    percentage = (total_budget / baseline) * 100

    if percentage < BUDGET_MIN_RATIO * 100:
        return BudgetCheck(
            is_valid=False,
            message=f"Budget may be insufficient. Consider increasing to at least {_money(baseline * BUDGET_MIN_RATIO)}",
            percentage_of_baseline=percentage,
        )
    if percentage > BUDGET_MAX_RATIO * 100:
        return BudgetCheck(
            is_valid=False,
            message=f"Budget significantly exceeds typical {project_type} costs. Review for potential optimization.",
            percentage_of_baseline=percentage,
        )
    return BudgetCheck(
        is_valid=True,
        message=f"Budget is appropriate for {project_type} project.",
        percentage_of_baseline=percentage,
    )


_IMPACT_MESSAGES: dict[str, str] = {
    "severe": "Severe timeline compression detected. Potential revenue loss: {amount}",
    "moderate": "Moderate timeline compression. Potential revenue impact: {amount}",
    "mild": "Mild timeline compression. Minor revenue impact: {amount}",
}


def _money(amount: float) -> str:
    if float(amount).is_integer():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
