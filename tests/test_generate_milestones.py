import math
from datetime import datetime, timedelta, timezone

import pytest

from release_compass.core.graph.dependency_engine import DependencyEngine
from release_compass.core.templates.generate_milestones import (
    calculate_timeline_bounds,
    calculate_timeline_position,
    generate_milestones,
    reposition,
)
from release_compass.core.templates.template_config import DEFAULT_TEMPLATES, MilestoneTemplate


RELEASE = datetime(2027, 6, 1, tzinfo=timezone.utc)


def test_generate_album_dates_and_ids():
    got = generate_milestones("album", RELEASE, "ALB-1")

    assert len(got) == 9
    assert got[0].id == "ALB-1-pre-production-0"
    assert got[0].date == RELEASE - timedelta(days=180)
    assert got[-1].title == "Release"
    assert got[-1].date == RELEASE
    assert all(m.status == "planned" and m.actual_cost == 0 for m in got)
    assert sum(m.budget for m in got) == 26000


def test_generate_resolves_named_dependencies():
    got = generate_milestones("single", RELEASE, "S")
    by_title = {m.title: m for m in got}

    assert by_title["Mixing"].dependencies == [by_title["Recording"].id]
    assert by_title["Release"].dependencies == [by_title["Mastering"].id, by_title["Artwork"].id]
    assert by_title["Artwork"].dependencies == []


def test_generated_plans_satisfy_ordering_and_are_acyclic():
    for ptype in ("single", "ep", "album"):
        got = generate_milestones(ptype, RELEASE, "P")  # type: ignore[arg-type]
        engine = DependencyEngine(got)
        assert engine.find_violations() == []
        for m in got:
            for dep in m.dependencies:
                assert engine.would_create_cycle(dep, m.id)


def test_generate_positions():
    got = generate_milestones("ep", RELEASE, "EP")

    assert got[0].timeline_position == 0.0
    assert got[-1].timeline_position == 1.0
    assert got[1].timeline_position == pytest.approx(30 / 90)
    assert got[0].radial_position == 0.0
    assert got[3].radial_position == pytest.approx(math.pi)


def test_generate_skips_unresolvable_dependency():
    templates = {
        "single": [
            MilestoneTemplate(title="Release", days_before_release=0, budget=1, category="other", risk_level="low", dependencies=["Later"]),
            MilestoneTemplate(title="Later", days_before_release=0, budget=1, category="other", risk_level="low"),
        ]
    }
    got = generate_milestones("single", RELEASE, "X", templates=templates)
    assert got[0].dependencies == []
    # zero offset span
    assert got[0].timeline_position == 0.0


def test_album_bounds_cover_release_and_first_offset():
    got = generate_milestones("album", RELEASE, "ALB")
    bounds = calculate_timeline_bounds(got)

    max_offset = max(t.days_before_release for t in DEFAULT_TEMPLATES["album"])
    assert bounds.end >= RELEASE
    assert bounds.start <= RELEASE - timedelta(days=max_offset)
    assert bounds.end - RELEASE == timedelta(days=18)


def test_bounds_default_window_when_empty():
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)
    bounds = calculate_timeline_bounds([], now=now)
    assert bounds.start == now
    assert bounds.end == now + timedelta(days=180)

    bounds = calculate_timeline_bounds([], now=now, window_days=30)
    assert bounds.end == now + timedelta(days=30)


def test_timeline_position_clamps():
    start = RELEASE - timedelta(days=100)
    assert calculate_timeline_position(RELEASE - timedelta(days=50), start, RELEASE) == pytest.approx(0.5)
    assert calculate_timeline_position(start - timedelta(days=1), start, RELEASE) == 0.0
    assert calculate_timeline_position(RELEASE + timedelta(days=1), start, RELEASE) == 1.0
    assert calculate_timeline_position(RELEASE, RELEASE, RELEASE) == 0.0


def test_reposition_recomputes_against_bounds():
    got = generate_milestones("single", RELEASE, "S")
    bounds = calculate_timeline_bounds(got)
    moved = reposition(got, bounds)

    assert all(0.0 < m.timeline_position < 1.0 for m in moved)
    assert [m.radial_position for m in moved] == [m.radial_position for m in got]
