"""Per-unit chart registries and the read-only directory of all units."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Iterator

from .errors import ConfigurationError, DuplicateArtifact, RegistryFrozen, UnknownArtifact, UnknownBuildUnit
from .model import Artifact, DependencyReference, as_reference, is_path_segment


class ArtifactRegistry:
    """Charts declared by one build unit, kept in declaration order."""

    def __init__(self, unit: str) -> None:
        if not unit or not unit.strip():
            raise ValueError("Build unit identifiers cannot be empty")
        self.unit = unit
        self._artifacts: Dict[str, Artifact] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def declare(
        self,
        name: str,
        *,
        version: str,
        source_dir: Path | str,
        dependencies: Iterable["str | Artifact | DependencyReference"] = (),
    ) -> Artifact:
        artifact = Artifact(
            unit=self.unit,
            name=name,
            version=version,
            source_dir=Path(source_dir),
            dependencies=[as_reference(item) for item in dependencies],
        )
        return self.add(artifact)

    def add(self, artifact: Artifact) -> Artifact:
        if self._frozen:
            raise RegistryFrozen(self.unit)
        if artifact.unit != self.unit:
            raise ValueError(f"Chart '{artifact.label}' cannot be registered in unit '{self.unit}'")
        if not is_path_segment(artifact.name):
            raise ConfigurationError(
                f"Chart name '{artifact.name}' in unit '{self.unit}' must be a single directory name"
            )
        if artifact.name in self._artifacts:
            raise DuplicateArtifact(self.unit, artifact.name)
        self._artifacts[artifact.name] = artifact
        return artifact

    def get(self, name: str, *, referrer: str | None = None) -> Artifact:
        try:
            return self._artifacts[name]
        except KeyError:
            raise UnknownArtifact(self.unit, name, referrer=referrer, available=self._artifacts) from None

    def freeze(self) -> None:
        self._frozen = True

    def names(self) -> list[str]:
        return list(self._artifacts)

    def __contains__(self, name: object) -> bool:
        return name in self._artifacts

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self._artifacts.values())

    def __len__(self) -> int:
        return len(self._artifacts)

    def __repr__(self) -> str:
        return f"ArtifactRegistry({self.unit!r}, charts={self.names()!r})"


class UnitDirectory:
    """Read-only view over every unit's registry.

    Units are registered once during discovery; the resolver receives the
    directory at construction time and only ever reads from it.
    """

    def __init__(self, registries: Iterable[ArtifactRegistry] = ()) -> None:
        self._registries: Dict[str, ArtifactRegistry] = {}
        self._frozen = False
        for registry in registries:
            self.register(registry)

    def register(self, registry: ArtifactRegistry) -> ArtifactRegistry:
        if self._frozen:
            raise RegistryFrozen(registry.unit)
        if registry.unit in self._registries:
            raise ValueError(f"Build unit '{registry.unit}' is registered more than once")
        self._registries[registry.unit] = registry
        return registry

    def create(self, unit: str) -> ArtifactRegistry:
        return self.register(ArtifactRegistry(unit))

    def get(self, unit: str, *, referrer: str | None = None) -> ArtifactRegistry:
        try:
            return self._registries[unit]
        except KeyError:
            raise UnknownBuildUnit(unit, referrer=referrer, available=self._registries) from None

    def freeze(self) -> None:
        self._frozen = True
        for registry in self._registries.values():
            registry.freeze()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def units(self) -> list[str]:
        return list(self._registries)

    def artifacts(self) -> Iterator[Artifact]:
        for registry in self._registries.values():
            yield from registry

    def __contains__(self, unit: object) -> bool:
        return unit in self._registries

    def __iter__(self) -> Iterator[ArtifactRegistry]:
        return iter(self._registries.values())

    def __len__(self) -> int:
        return len(self._registries)


__all__ = ["ArtifactRegistry", "UnitDirectory"]
