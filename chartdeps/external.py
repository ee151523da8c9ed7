"""Resolve external module coordinates to exactly one chart archive."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Protocol, runtime_checkable

from core.archive import detect_format

from .errors import AmbiguousArtifact, ArtifactNotFound
from .model import ModuleCoordinates


@runtime_checkable
class ExternalResolver(Protocol):
    def resolve(self, coordinates: ModuleCoordinates) -> Path:
        ...


class RepositoryResolver:
    """Look coordinates up in local repositories using the Maven directory layout.

    ``group:name:version`` maps to ``<repo>/<group as path>/<name>/<version>/``
    and matches ``<name>-<version>[-<classifier>].<ext>`` archives there.
    Repositories are searched in order; the first one holding any match wins
    and must hold exactly one.
    """

    def __init__(self, repositories: Iterable[Path]) -> None:
        self.repositories: List[Path] = [Path(path) for path in repositories]

    @staticmethod
    def module_dir(repository: Path, coordinates: ModuleCoordinates) -> Path:
        return repository.joinpath(*coordinates.group.split("."), coordinates.name, coordinates.version)

    @staticmethod
    def _matches(path: Path, coordinates: ModuleCoordinates) -> bool:
        if not path.is_file() or detect_format(path) is None:
            return False
        stem = f"{coordinates.name}-{coordinates.version}"
        if coordinates.classifier:
            stem = f"{stem}-{coordinates.classifier}"
        if coordinates.extension:
            return path.name == f"{stem}.{coordinates.extension}"
        return path.name.startswith(f"{stem}.")

    def candidates(self, coordinates: ModuleCoordinates) -> List[Path]:
        for repository in self.repositories:
            module_dir = self.module_dir(repository, coordinates)
            if not module_dir.is_dir():
                continue
            found = sorted(path for path in module_dir.iterdir() if self._matches(path, coordinates))
            if found:
                return found
        return []

    def resolve(self, coordinates: ModuleCoordinates) -> Path:
        found = self.candidates(coordinates)
        if not found:
            searched = [str(self.module_dir(repository, coordinates)) for repository in self.repositories]
            raise ArtifactNotFound(str(coordinates), searched)
        if len(found) > 1:
            raise AmbiguousArtifact(str(coordinates), [str(path) for path in found])
        return found[0]


__all__ = ["ExternalResolver", "RepositoryResolver"]
