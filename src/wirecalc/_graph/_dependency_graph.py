"""Immutable view of module dependencies."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ._algorithms import reachable, topological_sort

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DependencyGraph(Generic[T]):
    """A directed graph of "depends on" relationships between nodes.

    This is a pure, immutable data structure with query methods. Unlike a
    plain edge list it keeps isolated nodes and remembers the order in which
    nodes were given, which makes traversal results reproducible.

    - predecessors[b] = (a,) means "b depends on a"
    - successors[a] = (b,) means "a is depended on by b"

    Attributes:
        _predecessors: Mapping from node to its direct dependencies.
        _successors: Mapping from node to the nodes that depend on it.

    """

    _predecessors: dict[T, tuple[T, ...]] = field(default_factory=dict)
    _successors: dict[T, tuple[T, ...]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, nodes: Iterable[T], edges: Iterable[tuple[T, T]]) -> DependencyGraph[T]:
        """Build a graph from nodes and (source, target) edges.

        An edge (a, b) means "b depends on a". Parallel edges between the
        same two nodes collapse into one.

        Args:
            nodes: All nodes, in the order used to break ties.
            edges: (source, target) pairs. Endpoints missing from ``nodes``
                are appended.

        Example:
            >>> graph = DependencyGraph.from_edges([1, 2, 3], [(1, 2), (2, 3)])
            >>> graph.predecessors(2)
            (1,)

        """
        predecessors: dict[T, list[T]] = {node: [] for node in nodes}
        successors: dict[T, list[T]] = {node: [] for node in predecessors}

        for src, dst in edges:
            predecessors.setdefault(src, [])
            successors.setdefault(src, [])
            predecessors.setdefault(dst, [])
            successors.setdefault(dst, [])
            if dst not in successors[src]:
                successors[src].append(dst)
                predecessors[dst].append(src)

        return cls(
            _predecessors={k: tuple(v) for k, v in predecessors.items()},
            _successors={k: tuple(v) for k, v in successors.items()},
        )

    @property
    def nodes(self) -> tuple[T, ...]:
        """All nodes in the graph, in construction order."""
        return tuple(self._successors)

    def predecessors(self, node: T) -> tuple[T, ...]:
        """Direct dependencies of a node."""
        return self._predecessors.get(node, ())

    def successors(self, node: T) -> tuple[T, ...]:
        """Direct dependents of a node."""
        return self._successors.get(node, ())

    def descendants(self, node: T) -> frozenset[T]:
        """All nodes that transitively depend on ``node``."""
        return frozenset(reachable(self._successors, node))

    def has_path(self, source: T, target: T) -> bool:
        """Check whether ``target`` can be reached from ``source``.

        A node always reaches itself.
        """
        if source == target:
            return True
        return target in reachable(self._successors, source)

    def would_create_cycle(self, source: T, target: T) -> bool:
        """Check whether adding the edge (source -> target) closes a cycle."""
        return self.has_path(target, source)

    def topological_order(self) -> list[T]:
        """Nodes ordered so that dependencies come before dependents.

        Raises:
            ValueError: If the graph contains a cycle.

        """
        return topological_sort(self._successors)

    def has_cycle(self) -> bool:
        """Check if the graph contains a cycle."""
        try:
            self.topological_order()
        except ValueError:
            return True
        return False

    def subgraph(self, nodes: Iterable[T]) -> DependencyGraph[T]:
        """Create a subgraph containing only the given nodes.

        Edges are kept only if both endpoints are in the node set. Node
        order follows this graph's order.
        """
        keep = set(nodes)
        ordered = [n for n in self._successors if n in keep]
        return DependencyGraph(
            _predecessors={n: tuple(p for p in self.predecessors(n) if p in keep) for n in ordered},
            _successors={n: tuple(s for s in self.successors(n) if s in keep) for n in ordered},
        )

    def update_order(self, changed: Iterable[T]) -> list[T]:
        """The recompute order after some nodes change.

        Returns the changed nodes and all their descendants, each exactly
        once, in topological order. Nodes not in the graph are ignored.
        """
        affected: set[T] = set()
        for node in changed:
            if node in self._successors:
                affected.add(node)
                affected |= reachable(self._successors, node)
        return self.subgraph(affected).topological_order()

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self._successors)

    def __contains__(self, node: object) -> bool:
        """Check if a node is in the graph."""
        return node in self._successors
