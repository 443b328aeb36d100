"""
Tests for dependency graph introspection.
"""

import pytest

from provio import DependencyGraph, provide
from provio.errors import DependencyCycleError


def diamond():
    base = provide("base")
    left = provide("left", dependencies=[base])
    right = provide("right", dependencies=[base])
    top = provide("top", dependencies=[left, right]).persisted()
    return base, left, right, top


class TestDependencyGraph:

    def test_from_providers_collects_transitive_nodes(self):
        base, left, right, top = diamond()
        graph = DependencyGraph.from_providers(top)

        assert set(graph.nodes) == {base, left, right, top}
        assert (top, left) in graph.edges
        assert (left, base) in graph.edges
        assert len(graph.edges) == 4

    def test_nodes_are_identities_not_ids(self):
        one = provide("same")
        two = provide("same")
        graph = DependencyGraph.from_providers(provide("top", dependencies=[one, two]))

        assert len(graph.nodes) == 3

    def test_resolution_order_dependencies_first(self):
        base, left, right, top = diamond()
        order = DependencyGraph.from_providers(top).resolution_order()

        assert order[0] is base
        assert order[-1] is top
        assert order.index(left) < order.index(top)
        assert order.index(right) < order.index(top)

    def test_no_cycles_in_provider_graph(self):
        _, _, _, top = diamond()
        assert DependencyGraph.from_providers(top).detect_cycles() == []

    def test_detect_cycles(self):
        a, b, c = provide("a"), provide("b"), provide("c")
        graph = DependencyGraph()
        graph.add_provider(a, [b])
        graph.add_provider(b, [c])
        graph.add_provider(c, [a])

        cycles = graph.detect_cycles()

        assert len(cycles) == 1
        assert sorted(cycles[0]) == ["a", "b", "c"]

    def test_self_loop_is_a_cycle(self):
        a = provide("a")
        graph = DependencyGraph()
        graph.add_provider(a, [a])

        assert graph.detect_cycles() == [["a"]]

    def test_resolution_order_raises_on_cycle(self):
        a, b = provide("a"), provide("b")
        graph = DependencyGraph()
        graph.add_provider(a, [b])
        graph.add_provider(b, [a])

        with pytest.raises(DependencyCycleError) as exc_info:
            graph.resolution_order()

        assert sorted(exc_info.value.cycle) == ["a", "b"]
        assert "Suggested fixes" in str(exc_info.value)

    def test_export_dot(self):
        base, _, _, top = diamond()
        dot = DependencyGraph.from_providers(top).export_dot()

        assert dot.startswith("digraph DependencyGraph {")
        assert '[label="top\\n(persisted)"]' in dot
        assert '[label="base\\n(transient)"]' in dot
        assert dot.count("->") == 4
        assert dot.endswith("}")

    def test_tree_view(self):
        _, _, _, top = diamond()
        tree = DependencyGraph.from_providers(top).tree_view()
        lines = tree.splitlines()

        assert lines[0] == "├── top"
        assert sum("base" in line for line in lines) == 2

    def test_tree_view_of_root(self):
        base, left, _, top = diamond()
        tree = DependencyGraph.from_providers(top).tree_view(left)
        assert tree.splitlines() == ["├── left", "    ├── base"]
