"""Turn declared dependency references into resolved graph edges."""
from __future__ import annotations

from typing import Dict, List

from .errors import UnknownArtifact
from .model import (
    Artifact,
    ArtifactReference,
    DependencyReference,
    ExternalArtifact,
    ExternalReference,
    ModuleCoordinates,
    NameReference,
    Node,
    ResolvedEdge,
    UnitReference,
)
from .registry import UnitDirectory


class DependencyResolver:
    """Resolve references against a fixed :class:`UnitDirectory`.

    Resolution only reads the registries. External coordinates map to one
    shared :class:`ExternalArtifact` per distinct coordinate string so every
    consumer of the same module shares a single fetch.
    """

    def __init__(self, directory: UnitDirectory) -> None:
        self._directory = directory
        self._externals: Dict[str, ExternalArtifact] = {}

    def resolve(self, artifact: Artifact) -> List[ResolvedEdge]:
        """Return the edges into ``artifact`` in declaration order, duplicates collapsed."""

        edges: List[ResolvedEdge] = []
        seen: set[tuple] = set()
        for reference in artifact.dependencies:
            source = self.resolve_reference(reference, referrer=artifact)
            edge = ResolvedEdge(source=source, target=artifact)
            if edge.key in seen:
                continue
            seen.add(edge.key)
            edges.append(edge)
        return edges

    def resolve_all(self) -> List[ResolvedEdge]:
        """Freeze the directory and resolve every declared chart."""

        self._directory.freeze()
        edges: List[ResolvedEdge] = []
        for artifact in self._directory.artifacts():
            edges.extend(self.resolve(artifact))
        return edges

    def resolve_reference(self, reference: DependencyReference, *, referrer: Artifact) -> Node:
        if isinstance(reference, NameReference):
            registry = self._directory.get(referrer.unit, referrer=referrer.label)
            return registry.get(reference.name, referrer=referrer.label)

        if isinstance(reference, ArtifactReference):
            return self._validate_direct(reference.artifact, referrer=referrer)

        if isinstance(reference, UnitReference):
            registry = self._directory.get(reference.unit, referrer=referrer.label)
            return registry.get(reference.artifact, referrer=referrer.label)

        if isinstance(reference, ExternalReference):
            return self._external(reference.coordinates)

        raise TypeError(f"Unsupported dependency reference {reference!r} on '{referrer.label}'")

    def _validate_direct(self, artifact: Artifact, *, referrer: Artifact) -> Artifact:
        # Same relation as a by-name reference; the object must be the one registered.
        registry = self._directory.get(artifact.unit, referrer=referrer.label)
        registered = registry.get(artifact.name, referrer=referrer.label)
        if registered is not artifact:
            raise UnknownArtifact(artifact.unit, artifact.name, referrer=referrer.label)
        return registered

    def _external(self, coordinates: ModuleCoordinates) -> ExternalArtifact:
        key = str(coordinates)
        node = self._externals.get(key)
        if node is None:
            node = ExternalArtifact(coordinates)
            self._externals[key] = node
        return node


__all__ = ["DependencyResolver"]
