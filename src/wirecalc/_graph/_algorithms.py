"""Graph algorithms for dependency graph operations."""

from collections import deque
from collections.abc import Hashable, Iterable, Mapping
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def topological_sort(successors: Mapping[T, Iterable[T]]) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Given a graph represented as a mapping from nodes to their successors
    (nodes that depend on them), return nodes in an order where each node
    appears before all nodes that depend on it. Among nodes that are ready
    at the same time, the mapping's iteration order is kept, so the result
    is deterministic.

    Args:
        successors: Mapping from node to the nodes that depend on it.
            Every node must appear as a key. An edge (a -> b) means
            "b depends on a".

    Returns:
        List of nodes in topological order.

    Raises:
        ValueError: If the graph contains a cycle.

    Example:
        >>> topological_sort({"a": ["b"], "b": ["c"], "c": []})
        ['a', 'b', 'c']

    """
    indegree: dict[T, int] = dict.fromkeys(successors, 0)
    for deps in successors.values():
        for dep in deps:
            indegree[dep] = indegree.get(dep, 0) + 1

    queue = deque(node for node, deg in indegree.items() if deg == 0)
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in successors.get(node, ()):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    if len(order) != len(indegree):
        msg = "Cycle detected in graph"
        raise ValueError(msg)

    return order


def reachable(successors: Mapping[T, Iterable[T]], start: T) -> set[T]:
    """Collect every node reachable from ``start`` by following edges.

    ``start`` itself is only included if it lies on a cycle.

    Example:
        >>> sorted(reachable({"a": ["b"], "b": ["c"], "c": []}, "a"))
        ['b', 'c']

    """
    visited: set[T] = set()
    stack = list(successors.get(start, ()))
    while stack:
        current = stack.pop()
        if current not in visited:
            visited.add(current)
            stack.extend(successors.get(current, ()))
    return visited
