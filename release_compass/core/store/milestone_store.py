from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Iterator, Optional

from release_compass.core.model import Milestone


class MilestoneStore:
    """Authoritative milestone records for one loaded project.

    Iteration follows insertion order; an upsert of an existing id keeps its
    slot. Engines never write here; callers commit the changes engines propose.
    """

    def __init__(self, milestones: Iterable[Milestone] = ()) -> None:
        self._records: dict[str, Milestone] = {}
        for m in milestones:
            self.upsert(m)

    def get(self, milestone_id: str) -> Optional[Milestone]:
        m = self._records.get(milestone_id)
        return _detached(m) if m is not None else None

    def upsert(self, milestone: Milestone) -> None:
        self._records[milestone.id] = _detached(milestone)

    def delete(self, milestone_id: str) -> None:
        self._records.pop(milestone_id, None)

    def all(self) -> list[Milestone]:
        return [_detached(m) for m in self._records.values()]

    def replace_all(self, milestones: Iterable[Milestone]) -> None:
        self._records = {}
        for m in milestones:
            self.upsert(m)

    def ids(self) -> list[str]:
        return list(self._records.keys())

    def __contains__(self, milestone_id: object) -> bool:
        return milestone_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Milestone]:
        return iter(self.all())


def _detached(m: Milestone) -> Milestone:
    # Records cross the store boundary with their own dependency list, in both directions.
    return replace(m, dependencies=list(m.dependencies))
