"""Dependency graph construction, cycle detection and deterministic ordering."""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Mapping, Sequence
import heapq

from .errors import CycleDetected, UnknownBuildUnit
from .model import EXTERNAL_UNIT, Artifact, Node, NodeKey, ResolvedEdge

_UNVISITED, _ACTIVE, _DONE = 0, 1, 2


class DependencyGraph:
    """Charts and external modules joined by resolved edges.

    ``order`` is a total order of node keys in which every edge's source
    precedes its target; ties are broken by declaration order.
    """

    def __init__(
        self,
        nodes: Mapping[NodeKey, Node],
        edges: Sequence[ResolvedEdge],
        order: Sequence[NodeKey],
    ) -> None:
        self._nodes: Dict[NodeKey, Node] = dict(nodes)
        self._edges: List[ResolvedEdge] = list(edges)
        self._order: List[NodeKey] = list(order)
        self._incoming: Dict[NodeKey, List[ResolvedEdge]] = {key: [] for key in self._nodes}
        self._outgoing: Dict[NodeKey, List[ResolvedEdge]] = {key: [] for key in self._nodes}
        for edge in self._edges:
            self._incoming[edge.target.key].append(edge)
            self._outgoing[edge.source.key].append(edge)

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[ResolvedEdge]:
        return list(self._edges)

    @property
    def order(self) -> List[NodeKey]:
        return list(self._order)

    def ordered_nodes(self) -> List[Node]:
        return [self._nodes[key] for key in self._order]

    def node(self, key: NodeKey) -> Node:
        return self._nodes[key]

    def incoming(self, key: NodeKey) -> List[ResolvedEdge]:
        return list(self._incoming.get(key, ()))

    def outgoing(self, key: NodeKey) -> List[ResolvedEdge]:
        return list(self._outgoing.get(key, ()))

    def position(self, key: NodeKey) -> int:
        return self._order.index(key)

    def closure(self, keys: Iterable[NodeKey]) -> "DependencyGraph":
        """Sub-graph of ``keys`` plus everything they depend on, transitively."""

        selected: set[NodeKey] = set()
        pending = [key for key in keys if key in self._nodes]
        while pending:
            key = pending.pop()
            if key in selected:
                continue
            selected.add(key)
            pending.extend(edge.source.key for edge in self._incoming[key])

        nodes = {key: node for key, node in self._nodes.items() if key in selected}
        edges = [edge for edge in self._edges if edge.target.key in selected]
        order = [key for key in self._order if key in selected]
        return DependencyGraph(nodes, edges, order)

    def for_units(self, units: Iterable[str]) -> "DependencyGraph":
        """Restrict the graph to the charts of ``units`` and their dependencies."""

        wanted = list(units)
        known = {node.unit for node in self._nodes.values() if isinstance(node, Artifact)}
        for unit in wanted:
            if unit not in known:
                raise UnknownBuildUnit(unit, available=sorted(known))
        return self.closure(
            key for key, node in self._nodes.items() if isinstance(node, Artifact) and node.unit in wanted
        )

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self.ordered_nodes())

    def __len__(self) -> int:
        return len(self._nodes)


class GraphBuilder:
    """Assemble resolved edges into a :class:`DependencyGraph`."""

    def build(self, edges: Iterable[ResolvedEdge], *, artifacts: Iterable[Artifact] = ()) -> DependencyGraph:
        edge_list = list(edges)
        nodes: Dict[NodeKey, Node] = {}
        for artifact in artifacts:
            nodes.setdefault(artifact.key, artifact)
        for edge in edge_list:
            nodes.setdefault(edge.target.key, edge.target)
            nodes.setdefault(edge.source.key, edge.source)

        dependencies: Dict[NodeKey, List[NodeKey]] = {key: [] for key in nodes}
        for edge in edge_list:
            bucket = dependencies[edge.target.key]
            if edge.source.key not in bucket:
                bucket.append(edge.source.key)

        cycle = find_cycle(dependencies)
        if cycle:
            raise CycleDetected([nodes[key].label for key in cycle])

        order = topological_order(dependencies)
        return DependencyGraph(nodes, edge_list, order)


def find_cycle(dependencies: Mapping[NodeKey, Sequence[NodeKey]]) -> List[NodeKey]:
    """Return the first cycle found by depth-first search, or an empty list.

    The returned path follows "depends on" links and repeats its first node
    at the end. Traversal starts from nodes in mapping order.
    """

    state: Dict[NodeKey, int] = {key: _UNVISITED for key in dependencies}

    for root in dependencies:
        if state[root] != _UNVISITED:
            continue
        state[root] = _ACTIVE
        path: List[NodeKey] = [root]
        stack: List[tuple[NodeKey, Iterator[NodeKey]]] = [(root, iter(dependencies[root]))]

        while stack:
            node, remaining = stack[-1]
            for dep in remaining:
                dep_state = state.get(dep, _DONE)
                if dep_state == _ACTIVE:
                    return path[path.index(dep):] + [dep]
                if dep_state == _UNVISITED:
                    state[dep] = _ACTIVE
                    path.append(dep)
                    stack.append((dep, iter(dependencies[dep])))
                    break
            else:
                state[node] = _DONE
                path.pop()
                stack.pop()

    return []


def _key_label(key: NodeKey) -> str:
    unit, name = key
    return name if unit == EXTERNAL_UNIT else f"{unit}:{name}"


def topological_order(dependencies: Mapping[NodeKey, Sequence[NodeKey]]) -> List[NodeKey]:
    """Kahn's algorithm; ready nodes leave in mapping (declaration) order."""

    index = {key: position for position, key in enumerate(dependencies)}
    dependents: Dict[NodeKey, List[NodeKey]] = {key: [] for key in dependencies}
    indegree: Dict[NodeKey, int] = {}

    for node, deps in dependencies.items():
        known = [dep for dep in deps if dep in index]
        indegree[node] = len(known)
        for dep in known:
            dependents[dep].append(node)

    ready = [(index[key], key) for key, degree in indegree.items() if degree == 0]
    heapq.heapify(ready)
    order: List[NodeKey] = []

    while ready:
        _, node = heapq.heappop(ready)
        order.append(node)
        for dependent in dependents[node]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, (index[dependent], dependent))

    if len(order) != len(index):
        cycle = find_cycle(dependencies)
        raise CycleDetected([_key_label(key) for key in cycle] or ["<unknown>"])

    return order


__all__ = ["DependencyGraph", "GraphBuilder", "find_cycle", "topological_order"]
