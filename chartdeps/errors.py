"""Exception hierarchy for dependency resolution and build execution.

Configuration errors abort a build before anything touches the filesystem.
Execution errors are recorded per chart; the orchestrator blocks whatever
depends on the failed chart and keeps building the rest.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .orchestrator import BuildReport


class ChartDepsError(Exception):
    """Base class for every error raised by chartdeps."""


class ConfigurationError(ChartDepsError, ValueError):
    """A declaration problem detected before any packaging starts."""


class UnknownBuildUnit(ConfigurationError):
    def __init__(self, unit: str, *, referrer: str | None = None, available: Iterable[str] = ()) -> None:
        self.unit = unit
        self.referrer = referrer
        message = f"Unknown build unit '{unit}'"
        if referrer:
            message = f"{message} referenced by '{referrer}'"
        names = ", ".join(available)
        if names:
            message = f"{message}. Available units: {names}"
        super().__init__(message)


class UnknownArtifact(ConfigurationError):
    def __init__(
        self,
        unit: str,
        name: str,
        *,
        referrer: str | None = None,
        available: Iterable[str] = (),
    ) -> None:
        self.unit = unit
        self.name = name
        self.referrer = referrer
        message = f"Unknown chart '{name}' in unit '{unit}'"
        if referrer:
            message = f"{message} referenced by '{referrer}'"
        names = ", ".join(available)
        if names:
            message = f"{message}. Available charts: {names}"
        super().__init__(message)


class DuplicateArtifact(ConfigurationError):
    def __init__(self, unit: str, name: str) -> None:
        self.unit = unit
        self.name = name
        super().__init__(f"Chart '{name}' is declared more than once in unit '{unit}'")


class RegistryFrozen(ConfigurationError):
    def __init__(self, unit: str) -> None:
        self.unit = unit
        super().__init__(f"Charts of unit '{unit}' can no longer change once resolution has started")


class CycleDetected(ConfigurationError):
    """Raised with the full cycle; ``path`` ends with its first node repeated."""

    def __init__(self, path: Sequence[str]) -> None:
        self.path = list(path)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.path)}")

    @property
    def members(self) -> list[str]:
        return self.path[:-1] if len(self.path) > 1 else list(self.path)


class ExecutionError(ChartDepsError, RuntimeError):
    """A packaging, fetch or extraction step failed for one graph node."""


class PackagingFailed(ExecutionError):
    def __init__(self, label: str, reason: str) -> None:
        self.label = label
        self.reason = reason
        super().__init__(f"Packaging '{label}' failed: {reason}")


class ArtifactNotFound(ExecutionError):
    def __init__(self, coordinates: str, searched: Iterable[str] = ()) -> None:
        self.coordinates = coordinates
        self.searched = list(searched)
        message = f"No archive found for '{coordinates}'"
        if self.searched:
            message = f"{message} (searched: {', '.join(self.searched)})"
        super().__init__(message)


class AmbiguousArtifact(ExecutionError):
    def __init__(self, coordinates: str, matches: Iterable[str]) -> None:
        self.coordinates = coordinates
        self.matches = list(matches)
        super().__init__(
            f"Expected exactly one archive for '{coordinates}' but found {len(self.matches)}: "
            + ", ".join(self.matches)
        )


class ExtractionFailed(ExecutionError):
    def __init__(self, label: str, reason: str) -> None:
        self.label = label
        self.reason = reason
        super().__init__(f"Extracting into '{label}' failed: {reason}")


class BlockedByUpstreamFailure(ChartDepsError):
    """Status for a node skipped because something it depends on failed.

    Never raised by the engine; it is attached to report entries so cascaded
    skips can be told apart from their root causes.
    """

    def __init__(self, label: str, roots: Iterable[str]) -> None:
        self.label = label
        self.roots = sorted(set(roots))
        super().__init__(f"'{label}' blocked by upstream failure of {', '.join(self.roots)}")


class BuildFailed(ChartDepsError):
    """Aggregate failure raised once per build when any chart failed."""

    def __init__(self, report: "BuildReport") -> None:
        self.report = report
        failed = [outcome.label for outcome in report.failed]
        blocked = [outcome.label for outcome in report.blocked]
        message = f"Build failed: {len(failed)} failed"
        if failed:
            message = f"{message} ({', '.join(failed)})"
        message = f"{message}, {len(blocked)} blocked"
        if blocked:
            message = f"{message} ({', '.join(blocked)})"
        super().__init__(message)


__all__ = [
    "AmbiguousArtifact",
    "ArtifactNotFound",
    "BlockedByUpstreamFailure",
    "BuildFailed",
    "ChartDepsError",
    "ConfigurationError",
    "CycleDetected",
    "DuplicateArtifact",
    "ExecutionError",
    "ExtractionFailed",
    "PackagingFailed",
    "RegistryFrozen",
    "UnknownArtifact",
    "UnknownBuildUnit",
]
