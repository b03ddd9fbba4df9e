from datetime import datetime, timedelta, timezone

import pytest

from release_compass.core.finance.financial_engine import (
    calculate_compression_impact,
    calculate_financial_summary,
    calculate_overrun_score,
    calculate_projected_overrun,
    calculate_risk_score,
    calculate_timeline_compression,
    identify_critical_path,
    validate_budget,
)
from release_compass.core.model import Milestone


T = datetime(2027, 3, 1, tzinfo=timezone.utc)


def _m(
    mid: str,
    days: int,
    *,
    budget: float = 100.0,
    actual: float = 0.0,
    risk: str = "low",
    status: str = "planned",
    deps: list[str] | None = None,
) -> Milestone:
    return Milestone(
        id=mid,
        title=mid,
        date=T + timedelta(days=days),
        budget=budget,
        actual_cost=actual,
        risk_level=risk,  # type: ignore[arg-type]
        status=status,  # type: ignore[arg-type]
        dependencies=deps or [],
        category="other",
    )


def _spaced(gap_days: int, n: int = 4) -> list[Milestone]:
    return [_m(f"M{i}", i * gap_days) for i in range(n)]


def test_overrun_sub_score_scenario():
    milestones = [
        _m("A", 0, budget=4000, actual=5000, status="completed"),
        _m("B", 20, budget=6000, actual=7000, status="completed"),
    ]
    assert calculate_overrun_score(milestones) == 40
    # 10 * 0.4 (low risk) + 10 * 0.3 (20-day spacing) + 40 * 0.3
    assert calculate_risk_score(milestones) == 19


def test_overrun_sub_score_caps_at_100():
    milestones = [_m("A", 0, budget=100, actual=1000)]
    assert calculate_overrun_score(milestones) == 100


@pytest.mark.parametrize(
    "gap,expected",
    [(20, 10), (14, 10), (30, 10), (10, 50), (7, 50), (3, 90), (45, 30)],
)
def test_timeline_compression_bands(gap, expected):
    assert calculate_timeline_compression(_spaced(gap)) == expected


def test_timeline_compression_needs_two_milestones():
    assert calculate_timeline_compression([]) == 0
    assert calculate_timeline_compression([_m("A", 0)]) == 0


def test_timeline_compression_ignores_input_order():
    milestones = list(reversed(_spaced(10)))
    assert calculate_timeline_compression(milestones) == 50


def test_risk_score_bounds():
    assert calculate_risk_score([]) == 0
    worst = [_m(f"M{i}", i, budget=10, actual=10_000, risk="high") for i in range(5)]
    assert 0 <= calculate_risk_score(worst) <= 100
    assert calculate_risk_score(worst) == 97


def test_projected_overrun_mixes_realized_and_projected():
    milestones = [
        _m("REC", 0, budget=500, actual=620, status="completed"),
        _m("MIX", 15, budget=300, actual=100, status="in-progress"),
        _m("MAS", 30, budget=200, status="planned"),
        _m("REL", 60, budget=500, status="planned"),
    ]
    # rate 0.24; realized 120; in-progress 72; planned 700 * 0.24
    assert calculate_projected_overrun(milestones) == pytest.approx(120 + 72 + 168)


def test_projected_overrun_in_progress_keeps_realized_overrun():
    milestones = [_m("MIX", 0, budget=100, actual=180, status="in-progress")]
    assert calculate_projected_overrun(milestones) == pytest.approx(80)


def test_projected_overrun_rate_averages_over_all_completed():
    milestones = [
        _m("A", 0, budget=100, actual=150, status="completed"),
        _m("B", 10, budget=100, actual=90, status="completed"),
        _m("C", 20, budget=1000, status="planned"),
    ]
    # rate = (0.5 + 0) / 2
    assert calculate_projected_overrun(milestones) == pytest.approx(50 + 250)


def test_projected_overrun_zero_budget_completed_milestone():
    milestones = [
        _m("A", 0, budget=0, actual=40, status="completed"),
        _m("B", 10, budget=100, status="planned"),
    ]
    assert calculate_projected_overrun(milestones) == pytest.approx(40)


def test_projected_overrun_never_negative():
    milestones = [_m("A", 0, budget=100, actual=0, status="in-progress"), _m("B", 1, status="overdue")]
    assert calculate_projected_overrun(milestones) == 0


def test_identify_critical_path_is_risk_selection_by_date():
    milestones = [
        _m("REL", 30, deps=["MIX"]),
        _m("MIX", 10),
        _m("VID", 20, risk="high"),
        _m("LATE", 5, status="overdue"),
        _m("ART", 0),
    ]
    assert identify_critical_path(milestones) == ["LATE", "MIX", "VID"]


def test_compression_impact_levels():
    severe = calculate_compression_impact(_spaced(3), "album")
    assert severe.level == "severe"
    assert severe.revenue_impact == pytest.approx(7500)
    assert "$7,500" in severe.message

    # A score of 50 already meets the severe threshold.
    assert calculate_compression_impact(_spaced(10), "single").level == "severe"

    optimal = calculate_compression_impact(_spaced(20), "ep")
    assert optimal.level == "optimal"
    assert optimal.revenue_impact == 0


def test_validate_budget():
    low = validate_budget(1000, "single")
    assert low.is_valid is False
    assert "$1,200" in low.message
    assert low.percentage_of_baseline == pytest.approx(66.666, rel=1e-3)

    ok = validate_budget(6500, "ep")
    assert ok.is_valid is True
    assert ok.percentage_of_baseline == pytest.approx(100)

    high = validate_budget(40000, "album")
    assert high.is_valid is False
    assert "exceeds" in high.message


def test_financial_summary_aggregates():
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    milestones = [
        _m("A", 0, budget=4000, actual=5000, status="completed"),
        _m("B", 20, budget=6000, actual=7000, status="completed", deps=["A"]),
    ]
    summary = calculate_financial_summary(milestones, now=now)

    assert summary.total_budget == 10000
    assert summary.total_actual_cost == 12000
    assert summary.risk_score == 19
    assert summary.critical_path == ["A"]
    assert summary.last_updated == now
    assert summary.projected_overrun == pytest.approx(2000)


def test_functions_do_not_mutate_input():
    milestones = [_m("B", 10, deps=["A"]), _m("A", 0)]
    before = list(milestones)
    calculate_financial_summary(milestones)
    assert milestones == before
