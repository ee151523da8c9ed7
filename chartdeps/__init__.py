"""Resolve, order and package charts that depend on each other within one build."""
from __future__ import annotations

from .errors import (
    AmbiguousArtifact,
    ArtifactNotFound,
    BlockedByUpstreamFailure,
    BuildFailed,
    ChartDepsError,
    ConfigurationError,
    CycleDetected,
    DuplicateArtifact,
    ExecutionError,
    ExtractionFailed,
    PackagingFailed,
    RegistryFrozen,
    UnknownArtifact,
    UnknownBuildUnit,
)
from .graph import DependencyGraph, GraphBuilder
from .model import (
    Artifact,
    ArtifactReference,
    ExternalArtifact,
    ExternalReference,
    ModuleCoordinates,
    NameReference,
    ResolvedEdge,
    UnitReference,
)
from .orchestrator import BuildReport, Orchestrator, OutcomeStatus, Schedule
from .registry import ArtifactRegistry, UnitDirectory
from .resolver import DependencyResolver

__all__ = [
    "AmbiguousArtifact",
    "Artifact",
    "ArtifactNotFound",
    "ArtifactReference",
    "ArtifactRegistry",
    "BlockedByUpstreamFailure",
    "BuildFailed",
    "BuildReport",
    "ChartDepsError",
    "ConfigurationError",
    "CycleDetected",
    "DependencyGraph",
    "DependencyResolver",
    "DuplicateArtifact",
    "ExecutionError",
    "ExternalArtifact",
    "ExternalReference",
    "ExtractionFailed",
    "GraphBuilder",
    "ModuleCoordinates",
    "NameReference",
    "Orchestrator",
    "OutcomeStatus",
    "PackagingFailed",
    "RegistryFrozen",
    "ResolvedEdge",
    "Schedule",
    "UnitDirectory",
    "UnitReference",
    "UnknownArtifact",
    "UnknownBuildUnit",
]
