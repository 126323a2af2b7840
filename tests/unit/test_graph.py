"""
Tests for the selector dependency graph.
"""

import pytest

from unifx import CircularDependencyError, DependencyGraph, SelectorGraph, create_selector
from unifx.selector import select_slice, select_state


class TestDependencyGraph:
    """Test suite for DependencyGraph cycle detection and ordering."""

    def test_empty_graph(self):
        """Empty graph has no cycles and no nodes."""
        graph = DependencyGraph()
        assert len(graph) == 0
        assert not graph.has_cycle()
        assert graph.topological_sort() == []

    def test_simple_chain(self):
        """Linear chain A -> B -> C sorts in dependency order."""
        graph = DependencyGraph()

        graph.add_edge("A", "B")  # B reads A
        graph.add_edge("B", "C")  # C reads B

        assert len(graph) == 3
        assert "B" in graph
        assert graph.topological_sort() == ["A", "B", "C"]

    def test_duplicate_edge_is_reported(self):
        """Adding an existing edge returns False."""
        graph = DependencyGraph()

        assert graph.add_edge("A", "B") is True
        assert graph.add_edge("A", "B") is False

    def test_cycle_is_refused(self):
        """Closing a cycle raises and leaves the graph acyclic."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")

        with pytest.raises(CircularDependencyError, match="would create a cycle"):
            graph.add_edge("C", "A")

        assert not graph.has_cycle()
        assert graph.get_dependents("C") == set()

    def test_self_loop_is_refused(self):
        """A node cannot depend on itself."""
        graph = DependencyGraph()

        with pytest.raises(CircularDependencyError):
            graph.add_edge("A", "A")

    def test_diamond_orders_shared_dependent_last(self):
        """Diamond A -> {B, C} -> D puts A first and D last."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("A", "C")
        graph.add_edge("B", "D")
        graph.add_edge("C", "D")

        order = graph.topological_sort()

        assert order[0] == "A"
        assert order[-1] == "D"
        assert graph.get_all_dependents("A") == {"B", "C", "D"}
        assert graph.get_dependencies("D") == {"B", "C"}

    def test_topological_sort_of_subset(self):
        """Sorting a subset ignores nodes outside it."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")

        assert graph.topological_sort(["C", "B"]) == ["B", "C"]

    def test_remove_node_drops_its_edges(self):
        """Removing a node removes every edge touching it."""
        graph = DependencyGraph()
        graph.add_edge("A", "B")
        graph.add_edge("B", "C")

        graph.remove_node("B")

        assert "B" not in graph
        assert graph.get_dependents("A") == set()
        assert graph.get_dependencies("C") == set()


class TestSelectorGraph:
    """Test suite for affected-selector computation."""

    def test_register_walks_upstream_inputs(self):
        """Registering a composite registers its inputs too."""
        total = create_selector("counter", lambda n: n * 2)
        graph = SelectorGraph()

        graph.register(total)

        assert total in graph
        assert select_slice("counter") in graph
        assert graph.dependencies_of(total) == {select_slice("counter")}

    def test_affected_follows_changed_slices(self):
        """Only selectors reachable from changed slices are affected."""
        doubled = create_selector("counter", lambda n: n * 2)
        quadrupled = create_selector(doubled, lambda n: n * 2)
        todo_count = create_selector("todos", len)
        graph = SelectorGraph()
        for selector in (quadrupled, todo_count):
            graph.register(selector)

        affected = graph.affected({"counter"})

        assert affected == [select_slice("counter"), doubled, quadrupled]
        assert todo_count not in affected

    def test_root_selectors_are_always_affected(self):
        """Selectors reading the whole state are affected by any change."""
        size = create_selector(select_state(), len)
        graph = SelectorGraph()
        graph.register(size)

        assert size in graph.affected({"anything"})
        assert graph.affected(set()) == []

    def test_upstream_added_by_an_edge_is_still_classified(self):
        """A composite registered first still puts its slice leaf in the index."""
        todo_count = create_selector("todos", len)
        graph = SelectorGraph()

        graph.register(todo_count)

        assert graph.affected({"todos"}) == [select_slice("todos"), todo_count]
        assert "todos" in repr(graph)

    def test_shared_leaf_is_classified_for_every_composite(self):
        """Two composites over one slice are both affected by it."""
        doubled = create_selector("counter", lambda n: n * 2)
        negated = create_selector("counter", lambda n: -n)
        graph = SelectorGraph()
        graph.register(doubled)
        graph.register(negated)

        affected = graph.affected({"counter"})

        assert affected[0] is select_slice("counter")
        assert set(affected[1:]) == {doubled, negated}

    def test_release_prunes_nodes_nothing_reads(self):
        """Releasing the last registration removes the selector and its private upstream."""
        doubled = create_selector("counter", lambda n: n * 2)
        quadrupled = create_selector(doubled, lambda n: n * 2)
        graph = SelectorGraph()
        graph.register(quadrupled)

        graph.release(quadrupled)

        assert len(graph) == 0
        assert graph.affected({"counter"}) == []

    def test_release_keeps_nodes_still_in_use(self):
        """Shared upstream nodes and multiply registered selectors survive a release."""
        doubled = create_selector("counter", lambda n: n * 2)
        quadrupled = create_selector(doubled, lambda n: n * 2)
        graph = SelectorGraph()
        graph.register(doubled)
        graph.register(quadrupled)
        graph.register(quadrupled)

        graph.release(quadrupled)
        assert quadrupled in graph

        graph.release(quadrupled)
        assert quadrupled not in graph
        assert doubled in graph
        assert graph.affected({"counter"}) == [select_slice("counter"), doubled]

    def test_directly_registered_slice_survives_composite_release(self):
        """A slice registered on its own stays after a composite over it goes."""
        leaf = select_slice("todos")
        todo_count = create_selector(leaf, len)
        graph = SelectorGraph()
        graph.register(leaf)
        graph.register(todo_count)

        graph.release(todo_count)

        assert leaf in graph
        assert graph.affected({"todos"}) == [leaf]
