from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CompassError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<project>"
        return f"{loc}: {self.code}: {self.message}"


class ProjectLoadError(CompassError):
    pass


class ProjectValidationError(CompassError):
    pass


class RangeError(ProjectValidationError):
    """Negative amount or a value outside a closed enumeration."""


@dataclass(frozen=True)
class DependencyValidationError(CompassError):
    """A proposed date breaks dependency ordering. Carries every violated edge."""

    violations: tuple[str, ...] = ()

    def __str__(self) -> str:
        base = super().__str__()
        if not self.violations:
            return base
        return base + "".join(f"\n  - {v}" for v in self.violations)


class CycleError(CompassError):
    pass


class IntegrityError(CompassError):
    pass
