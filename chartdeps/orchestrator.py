"""Schedule and run packaging, fetch and extraction operations for a graph."""
from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Union
import heapq

from .console import Console
from .errors import BlockedByUpstreamFailure, BuildFailed, ExecutionError
from .external import ExternalResolver, RepositoryResolver
from .extractor import Extractor, placement_names
from .graph import DependencyGraph
from .model import Artifact, ExternalArtifact, Node, NodeKey, PackagingResult, ResolvedEdge
from .packager import Packager


@dataclass(frozen=True, slots=True)
class PackageOperation:
    artifact: Artifact
    requires: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"package {self.artifact.label}"

    @property
    def owner(self) -> Node:
        return self.artifact

    def describe(self) -> str:
        return f"package {self.artifact.label} ({self.artifact.version})"


@dataclass(frozen=True, slots=True)
class FetchOperation:
    external: ExternalArtifact
    requires: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"fetch {self.external.label}"

    @property
    def owner(self) -> Node:
        return self.external

    def describe(self) -> str:
        return self.key


@dataclass(frozen=True, slots=True)
class ExtractOperation:
    edge: ResolvedEdge
    subdir: str
    destination: Path
    requires: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"extract {self.edge.source.label} -> {self.edge.target.label}"

    @property
    def owner(self) -> Node:
        return self.edge.target

    def describe(self) -> str:
        return f"extract {self.edge.source.label} into {self.destination}"


Operation = Union[PackageOperation, FetchOperation, ExtractOperation]


@dataclass(slots=True)
class Schedule:
    """Operations in a valid execution order; the same graph yields the same schedule."""

    graph: DependencyGraph
    operations: List[Operation] = field(default_factory=list)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def keys(self) -> List[str]:
        return [operation.key for operation in self.operations]

    def index(self, key: str) -> int:
        return self.keys().index(key)

    def placements(self) -> Dict[tuple[NodeKey, NodeKey], Path]:
        return {
            operation.edge.key: operation.destination
            for operation in self.operations
            if isinstance(operation, ExtractOperation)
        }

    def describe(self) -> List[str]:
        return [f"{position:>3}. {operation.describe()}" for position, operation in enumerate(self.operations, 1)]


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"


@dataclass(slots=True)
class ArtifactOutcome:
    node: Node
    status: OutcomeStatus
    archive: Path | None = None
    error: Exception | None = None

    @property
    def label(self) -> str:
        return self.node.label

    @property
    def blocked_by(self) -> List[str]:
        if isinstance(self.error, BlockedByUpstreamFailure):
            return list(self.error.roots)
        return []


class BuildReport:
    """Per-node result of one build, in schedule order."""

    def __init__(self, outcomes: Iterable[ArtifactOutcome]) -> None:
        self._outcomes: Dict[NodeKey, ArtifactOutcome] = {outcome.node.key: outcome for outcome in outcomes}

    @property
    def outcomes(self) -> List[ArtifactOutcome]:
        return list(self._outcomes.values())

    def get(self, key: NodeKey) -> ArtifactOutcome:
        return self._outcomes[key]

    def _with_status(self, status: OutcomeStatus) -> List[ArtifactOutcome]:
        return [outcome for outcome in self._outcomes.values() if outcome.status is status]

    @property
    def succeeded(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def blocked(self) -> List[ArtifactOutcome]:
        return self._with_status(OutcomeStatus.BLOCKED)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked

    def summary_lines(self) -> List[str]:
        lines = [f"{len(self.succeeded)} succeeded, {len(self.failed)} failed, {len(self.blocked)} blocked"]
        for outcome in self.failed:
            lines.append(f"FAILED  {outcome.label}: {outcome.error}")
        for outcome in self.blocked:
            lines.append(f"BLOCKED {outcome.label} (upstream failure: {', '.join(outcome.blocked_by)})")
        return lines

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise BuildFailed(self)


class Orchestrator:
    """Drive packagers, the external resolver and the extractor over a graph.

    Each chart is packaged at most once and each external module fetched at
    most once. For every edge the source's archive is extracted into the
    target after the source finished and before the target is packaged.
    Operations without a path between them may run in parallel on ``jobs``
    worker threads; scheduling state is only touched by the calling thread.
    """

    def __init__(
        self,
        *,
        packager: Packager,
        extractor: Extractor,
        console: Console,
        external_resolver: ExternalResolver | None = None,
        jobs: int = 1,
    ) -> None:
        if jobs < 1:
            raise ValueError("jobs must be at least 1")
        self._packager = packager
        self._extractor = extractor
        self._external = external_resolver or RepositoryResolver([])
        self._console = console
        self.jobs = jobs

    def schedule(self, graph: DependencyGraph) -> Schedule:
        plan = Schedule(graph=graph)
        producers: Dict[NodeKey, str] = {}

        for node in graph.ordered_nodes():
            if isinstance(node, ExternalArtifact):
                fetch = FetchOperation(node)
                plan.operations.append(fetch)
                producers[node.key] = fetch.key
                continue

            incoming = graph.incoming(node.key)
            names = placement_names(incoming)
            extract_keys: List[str] = []
            for edge in incoming:
                subdir = names[edge]
                extract = ExtractOperation(
                    edge=edge,
                    subdir=subdir,
                    destination=self._extractor.destination(node, subdir),
                    requires=(producers[edge.source.key],),
                )
                plan.operations.append(extract)
                extract_keys.append(extract.key)

            package = PackageOperation(node, requires=tuple(extract_keys))
            plan.operations.append(package)
            producers[node.key] = package.key

        return plan

    def run(self, graph: DependencyGraph) -> BuildReport:
        return self.execute(self.schedule(graph))

    def execute(self, schedule: Schedule) -> BuildReport:
        operations = {operation.key: operation for operation in schedule}
        index = {key: position for position, key in enumerate(operations)}
        waiting: Dict[str, set[str]] = {key: set(operation.requires) for key, operation in operations.items()}
        dependents: Dict[str, List[str]] = {key: [] for key in operations}
        for key, operation in operations.items():
            for required in operation.requires:
                dependents[required].append(key)

        archives: Dict[NodeKey, PackagingResult] = {}
        failures: Dict[NodeKey, ExecutionError] = {}
        cancelled: Dict[str, set[str]] = {}
        ready = [(index[key], key) for key, pending in waiting.items() if not pending]
        heapq.heapify(ready)

        def cancel_dependents(failed_key: str, root: str) -> None:
            stack = list(dependents[failed_key])
            while stack:
                key = stack.pop()
                roots = cancelled.setdefault(key, set())
                if root in roots:
                    continue
                roots.add(root)
                stack.extend(dependents[key])

        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="chartdeps") as executor:
            running: Dict[Future[Path], Operation] = {}
            while ready or running:
                while ready and len(running) < self.jobs:
                    _, key = heapq.heappop(ready)
                    operation = operations[key]
                    source_archive = None
                    if isinstance(operation, ExtractOperation):
                        source_archive = archives[operation.edge.source.key].archive
                    running[executor.submit(self._perform, operation, source_archive)] = operation

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda item: index[running[item].key]):
                    operation = running.pop(future)
                    owner = operation.owner
                    try:
                        result = future.result()
                    except ExecutionError as exc:
                        self._console.error(str(exc))
                        failures.setdefault(owner.key, exc)
                        cancel_dependents(operation.key, owner.label)
                        continue

                    if isinstance(operation, PackageOperation):
                        operation.artifact.output = result
                    if not isinstance(operation, ExtractOperation):
                        archives[owner.key] = PackagingResult(owner, result)

                    for dependent in dependents[operation.key]:
                        if dependent in cancelled:
                            continue
                        waiting[dependent].discard(operation.key)
                        if not waiting[dependent]:
                            heapq.heappush(ready, (index[dependent], dependent))

        return self._report(schedule, archives, failures, cancelled)

    def _perform(self, operation: Operation, source_archive: Path | None) -> Path:
        if isinstance(operation, FetchOperation):
            self._console.info(f"Resolving {operation.external.label}")
            return self._external.resolve(operation.external.coordinates)
        if isinstance(operation, ExtractOperation):
            # Only submitted once the source's archive is recorded.
            assert source_archive is not None
            self._console.debug(f"Extracting {operation.edge}")
            return self._extractor.extract(source_archive, operation.edge.target, operation.subdir)
        self._console.info(f"Packaging {operation.artifact.label}")
        return self._packager.package(operation.artifact)

    def _report(
        self,
        schedule: Schedule,
        archives: Dict[NodeKey, PackagingResult],
        failures: Dict[NodeKey, ExecutionError],
        cancelled: Dict[str, set[str]],
    ) -> BuildReport:
        outcomes: List[ArtifactOutcome] = []
        for operation in schedule:
            if not isinstance(operation, (PackageOperation, FetchOperation)):
                continue
            node = operation.owner
            if node.key in failures:
                outcomes.append(ArtifactOutcome(node, OutcomeStatus.FAILED, error=failures[node.key]))
            elif operation.key in cancelled:
                blocked = BlockedByUpstreamFailure(node.label, cancelled[operation.key])
                self._console.warning(str(blocked))
                outcomes.append(ArtifactOutcome(node, OutcomeStatus.BLOCKED, error=blocked))
            else:
                packaged = archives.get(node.key)
                archive = packaged.archive if packaged else None
                outcomes.append(ArtifactOutcome(node, OutcomeStatus.SUCCEEDED, archive=archive))
        return BuildReport(outcomes)


__all__ = [
    "ArtifactOutcome",
    "BuildReport",
    "ExtractOperation",
    "FetchOperation",
    "Operation",
    "Orchestrator",
    "OutcomeStatus",
    "PackageOperation",
    "Schedule",
]
