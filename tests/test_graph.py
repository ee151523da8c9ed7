from __future__ import annotations

import unittest

from chartdeps.errors import CycleDetected, UnknownBuildUnit
from chartdeps.graph import DependencyGraph, GraphBuilder, find_cycle, topological_order
from chartdeps.model import EXTERNAL_UNIT, ExternalReference, UnitReference
from chartdeps.registry import UnitDirectory
from chartdeps.resolver import DependencyResolver


def build_graph(directory: UnitDirectory) -> DependencyGraph:
    edges = DependencyResolver(directory).resolve_all()
    return GraphBuilder().build(edges, artifacts=directory.artifacts())


class GraphBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.directory = UnitDirectory()
        self.unit = self.directory.create("u")

    def _declare(self, name: str, *dependencies: object, unit: str = "u") -> None:
        self.directory.get(unit).declare(name, version="1", source_dir=f"/{unit}/{name}", dependencies=dependencies)

    def _labels(self, graph: DependencyGraph) -> list[str]:
        return [node.label for node in graph.ordered_nodes()]

    def test_order_respects_every_edge(self) -> None:
        self._declare("app", "api", "db")
        self._declare("api", "lib")
        self._declare("db", "lib")
        self._declare("lib")
        graph = build_graph(self.directory)

        order = graph.order
        for edge in graph.edges:
            self.assertLess(order.index(edge.source.key), order.index(edge.target.key), str(edge))
        self.assertEqual(len(order), 4)

    def test_ties_break_by_declaration_order(self) -> None:
        self._declare("zeta")
        self._declare("alpha")
        self._declare("app", "alpha", "zeta")
        self._declare("middle")
        graph = build_graph(self.directory)
        self.assertEqual(self._labels(graph), ["u:zeta", "u:alpha", "u:app", "u:middle"])

    def test_repeated_builds_are_identical(self) -> None:
        self._declare("c", "a")
        self._declare("b", "a")
        self._declare("a")
        edges = DependencyResolver(self.directory).resolve_all()
        first = GraphBuilder().build(edges, artifacts=self.directory.artifacts())
        second = GraphBuilder().build(edges, artifacts=self.directory.artifacts())
        self.assertEqual(first.order, second.order)
        self.assertEqual(self._labels(first), ["u:a", "u:c", "u:b"])

    def test_isolated_charts_are_nodes(self) -> None:
        self._declare("alone")
        graph = build_graph(self.directory)
        self.assertEqual(self._labels(graph), ["u:alone"])
        self.assertEqual(graph.edges, [])

    def test_self_reference_is_a_cycle(self) -> None:
        self._declare("loop", "loop")
        with self.assertRaises(CycleDetected) as ctx:
            build_graph(self.directory)
        self.assertEqual(ctx.exception.path, ["u:loop", "u:loop"])
        self.assertEqual(ctx.exception.members, ["u:loop"])

    def test_cycle_names_every_member(self) -> None:
        self._declare("entry", "a")
        self._declare("a", "b")
        self._declare("b", "c")
        self._declare("c", "a")
        with self.assertRaises(CycleDetected) as ctx:
            build_graph(self.directory)
        self.assertEqual(ctx.exception.path, ["u:a", "u:b", "u:c", "u:a"])
        self.assertIn("u:a -> u:b -> u:c -> u:a", str(ctx.exception))

    def test_cross_unit_cycle(self) -> None:
        self.directory.create("v")
        self._declare("main", UnitReference("v"))
        self._declare("main", UnitReference("u"), unit="v")
        with self.assertRaises(CycleDetected) as ctx:
            build_graph(self.directory)
        self.assertEqual(sorted(ctx.exception.members), ["u:main", "v:main"])

    def test_external_nodes_precede_their_consumers(self) -> None:
        self._declare("app", ExternalReference.parse("org.example:redis:1.0.0"))
        graph = build_graph(self.directory)
        self.assertEqual(self._labels(graph), ["org.example:redis:1.0.0", "u:app"])
        self.assertTrue(graph.incoming(("u", "app"))[0].is_external)

    def test_closure_keeps_dependencies_only(self) -> None:
        self._declare("app", "lib")
        self._declare("lib")
        self._declare("other")
        graph = build_graph(self.directory)
        sub = graph.closure([("u", "app")])
        self.assertEqual(self._labels(sub), ["u:lib", "u:app"])
        self.assertEqual(len(sub.edges), 1)
        self.assertNotIn(("u", "other"), sub)

    def test_for_units_pulls_in_cross_unit_dependencies(self) -> None:
        self.directory.create("v")
        self._declare("main")
        self._declare("unrelated")
        self._declare("main", UnitReference("u"), unit="v")
        graph = build_graph(self.directory)

        sub = graph.for_units(["v"])
        self.assertEqual(self._labels(sub), ["u:main", "v:main"])
        with self.assertRaises(UnknownBuildUnit):
            graph.for_units(["missing"])


class OrderingHelperTests(unittest.TestCase):
    def test_topological_order_uses_mapping_order(self) -> None:
        dependencies = {("u", "b"): [], ("u", "a"): [], ("u", "c"): [("u", "a")]}
        self.assertEqual(topological_order(dependencies), [("u", "b"), ("u", "a"), ("u", "c")])

    def test_find_cycle_returns_empty_for_dags(self) -> None:
        self.assertEqual(find_cycle({("u", "a"): [("u", "b")], ("u", "b"): []}), [])

    def test_topological_order_raises_on_cycles(self) -> None:
        with self.assertRaises(CycleDetected):
            topological_order({("u", "a"): [("u", "b")], ("u", "b"): [("u", "a")]})

    def test_cycle_labels_show_external_coordinates(self) -> None:
        external = (EXTERNAL_UNIT, "org.example:redis:1.0.0")
        with self.assertRaises(CycleDetected) as ctx:
            topological_order({external: [("u", "a")], ("u", "a"): [external]})
        self.assertEqual(ctx.exception.path, ["org.example:redis:1.0.0", "u:a", "org.example:redis:1.0.0"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
