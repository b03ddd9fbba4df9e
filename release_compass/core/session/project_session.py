"""In-process caller for the engines.

A session owns one MilestoneStore and applies edits strictly one at a time:
validate against the current snapshot, compute the cascade, check the whole
proposed state, then commit. A rejected edit leaves the store untouched.
Transports are expected to feed handle_intent in arrival order per project.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from release_compass.core.config import DEFAULT_TIMELINE_WINDOW_DAYS
from release_compass.core.errors import (
    CompassError,
    CycleError,
    DependencyValidationError,
    IntegrityError,
    ProjectValidationError,
)
from release_compass.core.finance.financial_engine import calculate_financial_summary
from release_compass.core.graph.dependency_engine import DependencyEngine, detect_cycles
from release_compass.core.io.codec import (
    financial_update_message,
    milestone_delete_message,
    milestone_update_message,
    project_update_message,
    snapshot_to_dict,
    timeline_sync_message,
)
from release_compass.core.io.dates import as_utc, to_iso, utc_now
from release_compass.core.model import (
    DependencyUpdate,
    Milestone,
    Project,
    TimelineBounds,
    TimelineSnapshot,
)
from release_compass.core.store.milestone_store import MilestoneStore
from release_compass.core.templates.generate_milestones import (
    calculate_timeline_bounds,
    generate_milestones,
    reposition,
)
from release_compass.core.validate.validate_project import validate_milestone, validate_project_meta
from release_compass.logging_config import get_logger

logger = get_logger("session")


@dataclass(frozen=True)
class UpdateResult:
    updates: list[DependencyUpdate]
    snapshot: TimelineSnapshot


@dataclass(frozen=True)
class IntentResult:
    intent: str
    ok: bool
    snapshot: Optional[TimelineSnapshot] = None
    updates: list[DependencyUpdate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # Outgoing broadcast payloads for the other collaborators.
    messages: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.intent,
            "ok": self.ok,
            "errors": list(self.errors),
            "updates": [
                {"milestoneId": u.milestone_id, "newDate": to_iso(u.new_date), "reason": u.reason}
                for u in self.updates
            ],
            "state": snapshot_to_dict(self.snapshot) if self.snapshot is not None else None,
        }


class ProjectSession:
    def __init__(
        self,
        project: Optional[Project] = None,
        milestones: Iterable[Milestone] = (),
        *,
        window_days: int = DEFAULT_TIMELINE_WINDOW_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.project = project
        self.store = MilestoneStore()
        self._window_days = window_days
        self._clock = clock
        self._bounds: TimelineBounds = calculate_timeline_bounds([], now=clock(), window_days=window_days)
        milestones = list(milestones)
        if milestones:
            self.create_project(project, milestones)

    def engine(self) -> DependencyEngine:
        return DependencyEngine(self.store.all())

    @property
    def bounds(self) -> TimelineBounds:
        return self._bounds

    def snapshot(self) -> TimelineSnapshot:
        milestones = self.store.all()
        return TimelineSnapshot(
            milestones={m.id: m for m in milestones},
            financial_summary=calculate_financial_summary(milestones, now=self._clock()),
            timeline_start=self._bounds.start,
            timeline_end=self._bounds.end,
            project=self.project,
        )

    def create_project(self, project: Optional[Project], milestones: Iterable[Milestone]) -> TimelineSnapshot:
        """Replace the whole milestone set after checking integrity, acyclicity and ordering."""
        milestones = [_in_utc(m) for m in milestones]

        seen: set[str] = set()
        for m in milestones:
            if m.id in seen:
                raise IntegrityError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate milestone id: {m.id}",
                    path=f"milestones.{m.id}",
                )
            seen.add(m.id)
        for m in milestones:
            unknown = [d for d in m.dependencies if d not in seen]
            if unknown:
                raise IntegrityError(
                    code="E_UNKNOWN_DEPENDENCY",
                    message=f"dependencies reference unknown ids: {', '.join(unknown)}",
                    path=f"milestones.{m.id}.dependencies",
                )

        cycles = detect_cycles({m.id: list(m.dependencies) for m in milestones})
        if cycles:
            node, cycle = cycles[0]
            raise CycleError(
                code="E_DEPENDENCY_CYCLE",
                message="dependency cycle detected: " + " -> ".join(cycle),
                path=f"milestones.{node}.dependencies",
            )

        violations = DependencyEngine(milestones).find_violations()
        if violations:
            raise DependencyValidationError(
                code="E_DEPENDENCY_VIOLATION",
                message=f"{len(violations)} dependency ordering violation(s)",
                path="milestones",
                violations=tuple(violations),
            )

        self.project = project
        self._commit(milestones)
        logger.info("project %s loaded with %d milestones", project.id if project else "<none>", len(milestones))
        return self.snapshot()

    def update_milestone(self, milestone: Milestone, *, cascade: bool = True) -> UpdateResult:
        """Insert or replace a milestone, shifting its dependents when its date moves.

        Raises IntegrityError, CycleError or DependencyValidationError; nothing is
        committed in that case.
        """

        milestone = _in_utc(milestone)
        current = self.store.get(milestone.id)
        engine = self.engine()

        if milestone.id in milestone.dependencies:
            raise CycleError(
                code="E_DEPENDENCY_CYCLE",
                message=f"milestone cannot depend on itself: {milestone.id}",
                path=f"milestones.{milestone.id}.dependencies",
            )

        unknown = [d for d in milestone.dependencies if d not in self.store]
        if unknown:
            raise IntegrityError(
                code="E_UNKNOWN_DEPENDENCY",
                message=f"dependencies reference unknown ids: {', '.join(unknown)}",
                path=f"milestones.{milestone.id}.dependencies",
            )

        old_deps = set(current.dependencies) if current is not None else set()
        for dep in milestone.dependencies:
            if dep not in old_deps and engine.would_create_cycle(milestone.id, dep):
                raise CycleError(
                    code="E_DEPENDENCY_CYCLE",
                    message=f"{milestone.id} depending on {dep} would create a cycle",
                    path=f"milestones.{milestone.id}.dependencies",
                )

        updates: list[DependencyUpdate] = []
        if current is not None and cascade and milestone.date != current.date:
            updates = engine.calculate_cascading_updates(milestone.id, milestone.date)

        proposed: dict[str, Milestone] = {m.id: m for m in self.store.all()}
        proposed[milestone.id] = milestone
        for u in updates:
            proposed[u.milestone_id] = replace(proposed[u.milestone_id], date=u.new_date)

        touched = [milestone.id] + [u.milestone_id for u in updates]
        violations = DependencyEngine(proposed.values()).find_violations(touched)
        if violations:
            logger.info("rejected update of %s: %d violation(s)", milestone.id, len(violations))
            raise DependencyValidationError(
                code="E_DEPENDENCY_VIOLATION",
                message=f"{len(violations)} dependency ordering violation(s)",
                path=f"milestones.{milestone.id}.date",
                violations=tuple(violations),
            )

        self._commit(proposed.values())
        return UpdateResult(updates=updates, snapshot=self.snapshot())

    def move_milestone(self, milestone_id: str, new_date: datetime, *, cascade: bool = True) -> UpdateResult:
        current = self._require(milestone_id)
        return self.update_milestone(replace(current, date=new_date), cascade=cascade)

    def add_dependency(self, milestone_id: str, dependency_id: str) -> UpdateResult:
        current = self._require(milestone_id)
        self._require(dependency_id)
        if dependency_id in current.dependencies:
            return UpdateResult(updates=[], snapshot=self.snapshot())
        return self.update_milestone(
            replace(current, dependencies=list(current.dependencies) + [dependency_id]),
            cascade=False,
        )

    def delete_milestone(self, milestone_id: str) -> UpdateResult:
        """Remove a milestone and strip references to it from its dependents."""
        self._require(milestone_id)
        remaining: list[Milestone] = []
        for m in self.store.all():
            if m.id == milestone_id:
                continue
            if milestone_id in m.dependencies:
                m = replace(m, dependencies=[d for d in m.dependencies if d != milestone_id])
            remaining.append(m)
        self._commit(remaining)
        return UpdateResult(updates=[], snapshot=self.snapshot())

    def update_project(self, project: Project) -> TimelineSnapshot:
        """Replace the metadata of the loaded project. Milestones are left as they are."""
        if self.project is None or self.project.id != project.id:
            raise IntegrityError(
                code="E_UNKNOWN_PROJECT",
                message=f"no loaded project with id: {project.id}",
                path="project.id",
            )
        self.project = replace(project, release_date=as_utc(project.release_date))
        logger.info("project %s metadata updated", project.id)
        return self.snapshot()

    def handle_intent(self, message: dict[str, Any]) -> IntentResult:
        """Apply one transport intent; never raises for rejected input."""
        kind = message.get("type") if isinstance(message, dict) else None
        intent = kind if isinstance(kind, str) else "<unknown>"
        try:
            if kind == "milestone-update":
                return self._intent_update(intent, message)
            if kind == "milestone-delete":
                return self._intent_delete(intent, message)
            if kind == "project-create":
                return self._intent_create(intent, message)
            if kind == "project-update":
                return self._intent_project_update(intent, message)
            raise ProjectValidationError(
                code="E_UNKNOWN_INTENT",
                message=f"unknown message type: {kind!r}",
                path="type",
            )
        except CompassError as e:
            logger.info("intent %s rejected: %s", intent, e.code)
            return IntentResult(intent=intent, ok=False, errors=_error_lines(e))

    def _intent_update(self, intent: str, message: dict[str, Any]) -> IntentResult:
        milestone, errors = validate_milestone(message.get("milestone"), path="milestone")
        if milestone is None:
            return IntentResult(intent=intent, ok=False, errors=[str(e) for e in errors])
        result = self.update_milestone(milestone)
        changed = [milestone.id] + [u.milestone_id for u in result.updates]
        messages = [milestone_update_message(result.snapshot.milestones[mid]) for mid in changed]
        messages.append(financial_update_message(result.snapshot.financial_summary))
        return IntentResult(intent=intent, ok=True, snapshot=result.snapshot, updates=result.updates, messages=messages)

    def _intent_delete(self, intent: str, message: dict[str, Any]) -> IntentResult:
        milestone_id = message.get("milestoneId", message.get("milestone_id"))
        if not isinstance(milestone_id, str) or not milestone_id:
            raise ProjectValidationError(
                code="E_REQUIRED_FIELD",
                message="milestoneId is required and must be a non-empty string",
                path="milestoneId",
            )
        stripped = [m.id for m in self.store.all() if milestone_id in m.dependencies]
        result = self.delete_milestone(milestone_id)
        messages = [milestone_delete_message(milestone_id)]
        messages.extend(milestone_update_message(result.snapshot.milestones[mid]) for mid in stripped)
        messages.append(financial_update_message(result.snapshot.financial_summary))
        return IntentResult(intent=intent, ok=True, snapshot=result.snapshot, messages=messages)

    def _intent_create(self, intent: str, message: dict[str, Any]) -> IntentResult:
        project, errors = validate_project_meta(message.get("project"), path="project")
        raw_milestones = message.get("milestones") or []
        if not isinstance(raw_milestones, list):
            errors.append(
                ProjectValidationError(
                    code="E_INVALID_TYPE",
                    message="milestones must be an array",
                    path="milestones",
                )
            )
            raw_milestones = []

        milestones: list[Milestone] = []
        for i, raw in enumerate(raw_milestones):
            m, m_errors = validate_milestone(raw, path=f"milestones[{i}]")
            errors.extend(m_errors)
            if m is not None:
                milestones.append(m)
        if errors or project is None:
            return IntentResult(intent=intent, ok=False, errors=[str(e) for e in errors])

        if not milestones:
            milestones = generate_milestones(project.type, project.release_date, project.id)

        snapshot = self.create_project(project, milestones)
        return IntentResult(intent=intent, ok=True, snapshot=snapshot, messages=[timeline_sync_message(snapshot)])

    def _intent_project_update(self, intent: str, message: dict[str, Any]) -> IntentResult:
        project, errors = validate_project_meta(message.get("project"), path="project")
        if errors or project is None:
            return IntentResult(intent=intent, ok=False, errors=[str(e) for e in errors])
        snapshot = self.update_project(project)
        return IntentResult(intent=intent, ok=True, snapshot=snapshot, messages=[project_update_message(snapshot.project)])

    def _require(self, milestone_id: str) -> Milestone:
        m = self.store.get(milestone_id)
        if m is None:
            raise IntegrityError(
                code="E_UNKNOWN_MILESTONE",
                message=f"unknown milestone id: {milestone_id}",
                path=f"milestones.{milestone_id}",
            )
        return m

    def _commit(self, milestones: Iterable[Milestone]) -> None:
        milestones = list(milestones)
        self._bounds = calculate_timeline_bounds(milestones, now=self._clock(), window_days=self._window_days)
        self.store.replace_all(reposition(milestones, self._bounds))


def _error_lines(e: CompassError) -> list[str]:
    if isinstance(e, DependencyValidationError) and e.violations:
        return [f"{e.code}: {v}" for v in e.violations]
    return [str(e)]


def _in_utc(m: Milestone) -> Milestone:
    # Naive datetimes from API callers are read as UTC, like dates in project files.
    return m if m.date.tzinfo is timezone.utc else replace(m, date=as_utc(m.date))
