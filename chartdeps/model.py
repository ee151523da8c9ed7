"""Chart declarations, dependency references and resolved graph edges."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union
import re

DEFAULT_ARTIFACT = "main"
EXTERNAL_UNIT = "@external"

NodeKey = Tuple[str, str]

_COORDINATE_PART = re.compile(r"^[A-Za-z0-9_.+\-]+$")


def is_path_segment(value: str) -> bool:
    """True when ``value`` can name exactly one directory below another."""

    return bool(value) and value not in (".", "..") and "/" not in value and "\\" not in value


@dataclass(frozen=True, slots=True)
class ModuleCoordinates:
    """``group:name:version[:classifier][@extension]`` of an externally hosted chart."""

    group: str
    name: str
    version: str
    classifier: str | None = None
    extension: str | None = None

    @classmethod
    def parse(cls, text: str) -> "ModuleCoordinates":
        raw = text.strip()
        extension: str | None = None
        if "@" in raw:
            raw, _, extension = raw.partition("@")
            extension = extension.strip() or None
        parts = [part.strip() for part in raw.split(":")]
        if len(parts) not in (3, 4):
            raise ValueError(f"Invalid module coordinates '{text}' (expected group:name:version[:classifier][@ext])")
        for part in parts:
            if not part or not _COORDINATE_PART.match(part) or not is_path_segment(part):
                raise ValueError(f"Invalid module coordinates '{text}'")
        if not all(is_path_segment(segment) for segment in parts[0].split(".")):
            raise ValueError(f"Invalid module coordinates '{text}' (empty group segment)")
        group, name, version = parts[:3]
        classifier = parts[3] if len(parts) == 4 else None
        return cls(group=group, name=name, version=version, classifier=classifier, extension=extension)

    def __str__(self) -> str:
        text = f"{self.group}:{self.name}:{self.version}"
        if self.classifier:
            text = f"{text}:{self.classifier}"
        if self.extension:
            text = f"{text}@{self.extension}"
        return text


@dataclass(frozen=True, slots=True)
class NameReference:
    name: str


@dataclass(frozen=True, slots=True, eq=False)
class ArtifactReference:
    """Reference to an already declared :class:`Artifact` object."""

    artifact: "Artifact"


@dataclass(frozen=True, slots=True)
class UnitReference:
    unit: str
    artifact: str = DEFAULT_ARTIFACT


@dataclass(frozen=True, slots=True)
class ExternalReference:
    coordinates: ModuleCoordinates

    @classmethod
    def parse(cls, text: str) -> "ExternalReference":
        return cls(ModuleCoordinates.parse(text))


DependencyReference = Union[NameReference, ArtifactReference, UnitReference, ExternalReference]


@dataclass(eq=False, slots=True)
class Artifact:
    """A chart declared by one build unit.

    Identity is ``(unit, name)``; artifacts compare by identity so the same
    declaration can be looked up in sets and dicts while ``output`` changes.
    """

    unit: str
    name: str
    version: str
    source_dir: Path
    dependencies: List[DependencyReference] = field(default_factory=list)
    output: Path | None = None

    @property
    def key(self) -> NodeKey:
        return (self.unit, self.name)

    @property
    def label(self) -> str:
        return f"{self.unit}:{self.name}"

    def depends_on(self, *references: "str | Artifact | DependencyReference") -> "Artifact":
        """Append dependency references; bare strings name charts of the same unit."""

        for reference in references:
            self.dependencies.append(as_reference(reference))
        return self

    def __repr__(self) -> str:
        return f"Artifact({self.label!r}, version={self.version!r})"


@dataclass(frozen=True, slots=True)
class ExternalArtifact:
    """Synthetic graph node for a chart fetched by coordinates; never packaged."""

    coordinates: ModuleCoordinates

    @property
    def key(self) -> NodeKey:
        return (EXTERNAL_UNIT, str(self.coordinates))

    @property
    def label(self) -> str:
        return str(self.coordinates)

    @property
    def unit(self) -> str:
        return self.coordinates.group

    @property
    def name(self) -> str:
        return self.coordinates.name


Node = Union[Artifact, ExternalArtifact]


@dataclass(frozen=True, slots=True)
class ResolvedEdge:
    """``source`` must be packaged (or fetched) and extracted before ``target`` is packaged."""

    source: Node
    target: Artifact

    @property
    def key(self) -> tuple[NodeKey, NodeKey]:
        return (self.source.key, self.target.key)

    @property
    def is_external(self) -> bool:
        return isinstance(self.source, ExternalArtifact)

    def __str__(self) -> str:
        return f"{self.source.label} -> {self.target.label}"


@dataclass(frozen=True, slots=True)
class PackagingResult:
    node: Node
    archive: Path


def as_reference(value: "str | Artifact | DependencyReference") -> DependencyReference:
    if isinstance(value, (NameReference, ArtifactReference, UnitReference, ExternalReference)):
        return value
    if isinstance(value, Artifact):
        return ArtifactReference(value)
    if isinstance(value, ModuleCoordinates):
        return ExternalReference(value)
    if isinstance(value, str):
        name = value.strip()
        if not name:
            raise ValueError("Dependency names cannot be empty")
        return NameReference(name)
    raise TypeError(f"Unsupported dependency reference: {value!r}")


def describe_reference(reference: DependencyReference) -> str:
    if isinstance(reference, NameReference):
        return reference.name
    if isinstance(reference, ArtifactReference):
        return reference.artifact.label
    if isinstance(reference, UnitReference):
        return f"{reference.unit}:{reference.artifact}"
    return str(reference.coordinates)


__all__ = [
    "DEFAULT_ARTIFACT",
    "EXTERNAL_UNIT",
    "Artifact",
    "ArtifactReference",
    "DependencyReference",
    "ExternalArtifact",
    "ExternalReference",
    "ModuleCoordinates",
    "NameReference",
    "Node",
    "NodeKey",
    "PackagingResult",
    "ResolvedEdge",
    "UnitReference",
    "as_reference",
    "describe_reference",
    "is_path_segment",
]
