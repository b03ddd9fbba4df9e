"""Dependency graph over a milestone snapshot.

Edges point from a dependency to its dependents. The engine is rebuilt from a
snapshot (constructor or update_milestones) and never writes back; every
operation returns proposals for the caller to commit.
"""
from __future__ import annotations

import math
from collections import deque
from datetime import datetime
from typing import Iterable, Iterator, Optional

from release_compass.core.model import DependencyCheck, DependencyLine, DependencyUpdate, Milestone, Point
from release_compass.logging_config import get_logger

logger = get_logger("graph.dependency_engine")

# Scale of the flat projection used by getDependencyLines consumers.
LINE_RADIUS = 100.0
LINE_HEIGHT = 400.0


class DependencyEngine:
    def __init__(self, milestones: Iterable[Milestone] = ()) -> None:
        self._by_id: dict[str, Milestone] = {}
        self._dependents: dict[str, list[str]] = {}
        self.update_milestones(milestones)

    def update_milestones(self, milestones: Iterable[Milestone]) -> None:
        """Replace the snapshot and rebuild the dependency -> dependents index."""
        self._by_id = {m.id: m for m in milestones}
        self._dependents = {mid: [] for mid in self._by_id}
        for m in self._by_id.values():
            for dep in m.dependencies:
                if dep not in self._by_id:
                    logger.warning("milestone %s depends on unknown id %s; edge ignored", m.id, dep)
                    continue
                self._dependents[dep].append(m.id)

    def get(self, milestone_id: str) -> Optional[Milestone]:
        return self._by_id.get(milestone_id)

    def dependencies_of(self, milestone_id: str) -> list[str]:
        m = self._by_id.get(milestone_id)
        if m is None:
            return []
        return [d for d in m.dependencies if d in self._by_id]

    def dependents_of(self, milestone_id: str) -> list[str]:
        return list(self._dependents.get(milestone_id, []))

    def calculate_cascading_updates(self, milestone_id: str, new_date: datetime) -> list[DependencyUpdate]:
        """Shift every transitive dependent by the same delta as the moved milestone.

        Unknown ids propose nothing. The proposals are not checked against the
        dependents' other (unshifted) dependencies.
        """

        milestone = self._by_id.get(milestone_id)
        if milestone is None:
            logger.debug("cascade requested for unknown milestone %s", milestone_id)
            return []

        delta = new_date - milestone.date
        updates: list[DependencyUpdate] = []
        visited: set[str] = {milestone_id}
        queue: deque[str] = deque(self._dependents[milestone_id])
        while queue:
            cur = queue.popleft()
            if cur in visited:
                continue
            visited.add(cur)
            updates.append(DependencyUpdate(milestone_id=cur, new_date=self._by_id[cur].date + delta))
            for nxt in self._dependents[cur]:
                if nxt not in visited:
                    queue.append(nxt)

        logger.debug("cascade from %s by %s touches %d milestones", milestone_id, delta, len(updates))
        return updates

    def validate_dependency_constraints(self, milestone_id: str, proposed_date: datetime) -> DependencyCheck:
        milestone = self._by_id.get(milestone_id)
        if milestone is None:
            return DependencyCheck(valid=False, violations=[f"milestone not found: {milestone_id}"])

        violations: list[str] = []
        for dep_id in self.dependencies_of(milestone_id):
            dependency = self._by_id[dep_id]
            if proposed_date < dependency.date:
                violations.append(_before_dependency(milestone, dependency))

        for dependent_id in self._dependents[milestone_id]:
            dependent = self._by_id[dependent_id]
            if dependent.date < proposed_date:
                violations.append(_after_dependent(milestone, dependent))

        return DependencyCheck(valid=not violations, violations=violations)

    def find_violations(self, milestone_ids: Optional[Iterable[str]] = None) -> list[str]:
        """Ordering violations on every edge touching milestone_ids (all edges when None).

        Each violated edge is reported once, in store order.
        """

        touched = set(self._by_id) if milestone_ids is None else set(milestone_ids)
        violations: list[str] = []
        for m in self._by_id.values():
            for dep_id in self.dependencies_of(m.id):
                if m.id not in touched and dep_id not in touched:
                    continue
                dependency = self._by_id[dep_id]
                if m.date < dependency.date:
                    violations.append(_before_dependency(m, dependency))
        return violations

    def would_create_cycle(self, from_id: str, to_id: str) -> bool:
        """True if making from_id depend on to_id closes a cycle.

        That is the case exactly when to_id already reaches from_id by
        following dependencies (or when both ids are the same).
        """

        if from_id == to_id:
            return True
        seen: set[str] = set()
        stack: list[str] = [to_id]
        while stack:
            cur = stack.pop()
            if cur == from_id:
                return True
            if cur in seen:
                continue
            seen.add(cur)
            stack.extend(d for d in self.dependencies_of(cur) if d not in seen)
        return False

    def get_critical_path(self) -> list[str]:
        """Longest chain of dependency-linked milestones, earliest first.

        Walks backward from every sink (milestone nothing depends on). On ties
        the first chain found, in store order, wins.
        """

        best: dict[str, list[str]] = {}
        longest: list[str] = []
        for sink in self._sinks():
            chain = self._longest_chain_from(sink, best)
            if len(chain) > len(longest):
                longest = chain
        return list(reversed(longest))

    def get_dependency_lines(self) -> list[DependencyLine]:
        lines: list[DependencyLine] = []
        for m in self._by_id.values():
            for dep_id in self.dependencies_of(m.id):
                dep = self._by_id[dep_id]
                lines.append(
                    DependencyLine(
                        from_id=dep.id,
                        from_position=_project(dep),
                        to_id=m.id,
                        to_position=_project(m),
                    )
                )
        return lines

    def _sinks(self) -> Iterator[str]:
        return (mid for mid, deps in self._dependents.items() if not deps)

    def _longest_chain_from(self, start: str, best: dict[str, list[str]]) -> list[str]:
        # Iterative post-order DFS; best[node] is the longest chain [node, dep, ...].
        if start in best:
            return best[start]

        on_path: set[str] = {start}
        stack: list[tuple[str, Iterator[str]]] = [(start, iter(self.dependencies_of(start)))]
        while stack:
            node, pending = stack[-1]
            pushed = False
            for dep in pending:
                if dep in best or dep in on_path:
                    continue
                on_path.add(dep)
                stack.append((dep, iter(self.dependencies_of(dep))))
                pushed = True
                break
            if pushed:
                continue

            stack.pop()
            on_path.discard(node)
            chain = [node]
            for dep in self.dependencies_of(node):
                sub = best.get(dep)
                if sub is not None and node not in sub and len(sub) + 1 > len(chain):
                    chain = [node] + sub
            best[node] = chain

        return best[start]


def detect_cycles(id_to_deps: dict[str, list[str]]) -> list[tuple[str, list[str]]]:
    """Find dependency cycles with an explicit stack.

    Returns (node, cycle) pairs where cycle lists ids from the re-entered node
    back to itself. Each distinct cycle is reported once.
    """

    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {nid: WHITE for nid in id_to_deps}
    emitted: set[str] = set()
    out: list[tuple[str, list[str]]] = []

    for root in id_to_deps:
        if state[root] != WHITE:
            continue
        path: list[str] = [root]
        state[root] = GRAY
        stack: list[Iterator[str]] = [iter(id_to_deps.get(root, []))]
        while stack:
            u = path[-1]
            advanced = False
            for v in stack[-1]:
                if v not in state:
                    continue
                if state[v] == GRAY:
                    cycle = path[path.index(v):] + [v]
                    key = "->".join(cycle)
                    if key not in emitted:
                        emitted.add(key)
                        out.append((u, cycle))
                elif state[v] == WHITE:
                    state[v] = GRAY
                    path.append(v)
                    stack.append(iter(id_to_deps.get(v, [])))
                    advanced = True
                    break
            if advanced:
                continue
            stack.pop()
            path.pop()
            state[u] = BLACK

    return out


def _before_dependency(m: Milestone, dependency: Milestone) -> str:
    return f'cannot schedule "{m.title}" ({m.id}) before its dependency "{dependency.title}" ({dependency.id})'


def _after_dependent(m: Milestone, dependent: Milestone) -> str:
    return f'moving "{m.title}" ({m.id}) would conflict with dependent milestone "{dependent.title}" ({dependent.id})'


def _project(m: Milestone) -> Point:
    return Point(x=math.cos(m.radial_position) * LINE_RADIUS, y=m.timeline_position * LINE_HEIGHT)
