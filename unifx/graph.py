"""
UnifX Graph - Selector Dependency Tracking
==========================================

This module keeps the directed acyclic graph of selectors. An edge A -> B means
B reads A. Leaves are slice selectors (one per state slice) and the root-state
selector; everything above them is a memoized composite.

After a dispatch the store knows which slices changed. `SelectorGraph.affected`
turns that set into the selectors that could possibly produce a new value, in
topological order, so the subscription manager only re-reads those.

`DependencyGraph` is the generic structure underneath. It detects cycles as
edges are added: adding A -> B is refused when B can already reach A.
"""

from collections import defaultdict, deque
from typing import Any, Dict, Generic, Iterable, List, Set, TypeVar

from .errors import CircularDependencyError

T = TypeVar("T")


class DependencyGraph(Generic[T]):
    """
    Directed graph with incremental cycle detection.

    Attributes:
        forward: node -> nodes that depend on it
        reverse: node -> nodes it depends on
        nodes: every node ever added and not removed
    """

    def __init__(self):
        self.forward: Dict[T, Set[T]] = defaultdict(set)
        self.reverse: Dict[T, Set[T]] = defaultdict(set)
        self.nodes: Set[T] = set()

    def add_node(self, node: T) -> None:
        if node not in self.nodes:
            self.nodes.add(node)
            _ = self.forward[node]
            _ = self.reverse[node]

    def add_edge(self, source: T, dependent: T) -> bool:
        """
        Add `source -> dependent`.

        Returns False if the edge already existed.

        Raises:
            CircularDependencyError: If the edge would close a cycle
        """
        self.add_node(source)
        self.add_node(dependent)

        if dependent in self.forward[source]:
            return False

        if self._can_reach(dependent, source):
            raise CircularDependencyError(
                f"Adding edge {source!r} -> {dependent!r} would create a cycle"
            )

        self.forward[source].add(dependent)
        self.reverse[dependent].add(source)
        return True

    def remove_edge(self, source: T, dependent: T) -> bool:
        if dependent not in self.forward.get(source, ()):
            return False
        self.forward[source].discard(dependent)
        self.reverse[dependent].discard(source)
        return True

    def remove_node(self, node: T) -> None:
        if node not in self.nodes:
            return
        for dependent in list(self.forward[node]):
            self.remove_edge(node, dependent)
        for dependency in list(self.reverse[node]):
            self.remove_edge(dependency, node)
        del self.forward[node]
        del self.reverse[node]
        self.nodes.discard(node)

    def get_dependents(self, node: T) -> Set[T]:
        return set(self.forward.get(node, ()))

    def get_dependencies(self, node: T) -> Set[T]:
        return set(self.reverse.get(node, ()))

    def get_all_dependents(self, node: T) -> Set[T]:
        """Get all transitive dependents of a node."""
        affected: Set[T] = set()
        to_visit = {node}

        while to_visit:
            next_level = set()
            for current in to_visit:
                for dep in self.forward.get(current, ()):
                    if dep not in affected:
                        affected.add(dep)
                        next_level.add(dep)
            to_visit = next_level

        return affected

    def topological_sort(self, subset: Iterable[T] = None) -> List[T]:
        """
        Kahn's algorithm over `subset` (all nodes when omitted).

        Raises:
            CircularDependencyError: If the nodes cannot be ordered
        """
        keys = set(self.nodes if subset is None else subset)
        if not keys:
            return []

        in_degree = {
            key: sum(1 for dep in self.reverse.get(key, ()) if dep in keys)
            for key in keys
        }
        queue = deque(key for key in keys if in_degree[key] == 0)
        result: List[T] = []

        while queue:
            current = queue.popleft()
            result.append(current)
            for dependent in self.forward.get(current, ()):
                if dependent in keys:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        if len(result) != len(keys):
            raise CircularDependencyError("Graph contains cycles")
        return result

    def has_cycle(self) -> bool:
        try:
            self.topological_sort()
            return False
        except CircularDependencyError:
            return True

    def _can_reach(self, start: T, target: T) -> bool:
        """Iterative DFS: is there a path start -> ... -> target?"""
        stack = [start]
        visited: Set[int] = set()
        while stack:
            node = stack.pop()
            if node is target or node == target:
                return True
            if id(node) in visited:
                continue
            visited.add(id(node))
            stack.extend(self.forward.get(node, ()))
        return False

    def clear(self) -> None:
        self.forward.clear()
        self.reverse.clear()
        self.nodes.clear()

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node: Any) -> bool:
        return node in self.nodes

    def __repr__(self) -> str:
        edges = sum(len(v) for v in self.forward.values())
        return f"DependencyGraph(nodes={len(self.nodes)}, edges={edges})"


class SelectorGraph:
    """
    Registry of the selectors a store reads, wired by their declared inputs.

    Selectors are registered lazily (when subscribed to); registering a
    composite registers its whole upstream chain. Registrations are counted,
    and `release` drops a selector, along with any upstream node nothing else
    reads, once its count reaches zero.
    """

    def __init__(self):
        self._graph: DependencyGraph[Any] = DependencyGraph()
        self._slices: Dict[str, Set[Any]] = defaultdict(set)
        self._roots: Set[Any] = set()
        self._refs: Dict[Any, int] = {}

    def register(self, selector: Any) -> None:
        self._refs[selector] = self._refs.get(selector, 0) + 1

        pending = [selector]
        visited: Set[Any] = set()
        while pending:
            node = pending.pop()
            if node in visited:
                continue
            visited.add(node)

            # Upstream nodes may already be in the graph through add_edge
            self._graph.add_node(node)
            self._classify(node)

            for upstream in node.inputs:
                self._graph.add_edge(upstream, node)
                pending.append(upstream)

    def release(self, selector: Any) -> None:
        """Drop one registration of `selector`, pruning nodes nothing reads."""
        count = self._refs.get(selector, 0) - 1
        if count > 0:
            self._refs[selector] = count
            return
        self._refs.pop(selector, None)

        pending = [selector]
        while pending:
            node = pending.pop()
            if node not in self._graph or node in self._refs:
                continue
            if self._graph.get_dependents(node):
                continue
            upstream = self._graph.get_dependencies(node)
            self._graph.remove_node(node)
            self._unclassify(node)
            pending.extend(upstream)

    def _classify(self, node: Any) -> None:
        slice_name = getattr(node, "slice_name", None)
        if slice_name is not None:
            self._slices[slice_name].add(node)
        elif getattr(node, "is_root", False):
            self._roots.add(node)

    def _unclassify(self, node: Any) -> None:
        slice_name = getattr(node, "slice_name", None)
        if slice_name is not None:
            members = self._slices.get(slice_name)
            if members is not None:
                members.discard(node)
                if not members:
                    del self._slices[slice_name]
        self._roots.discard(node)

    def affected(self, changed: Iterable[str]) -> List[Any]:
        """Selectors that may change when the given slices change, in topological order."""
        changed = set(changed)
        if not changed:
            return []

        seeds: Set[Any] = set(self._roots)
        for name in changed:
            seeds.update(self._slices.get(name, ()))

        affected = set(seeds)
        for seed in seeds:
            affected.update(self._graph.get_all_dependents(seed))
        return self._graph.topological_sort(affected)

    def dependencies_of(self, selector: Any) -> Set[Any]:
        return self._graph.get_dependencies(selector)

    def __contains__(self, selector: Any) -> bool:
        return selector in self._graph

    def __len__(self) -> int:
        return len(self._graph)

    def __repr__(self) -> str:
        return f"SelectorGraph(selectors={len(self._graph)}, slices={sorted(self._slices)!r})"


__all__ = ["DependencyGraph", "SelectorGraph"]
