"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: An immutable, order-preserving directed graph
- topological_sort: Algorithm for ordering nodes by dependencies
- reachable: Transitive successor collection
"""

from ._algorithms import reachable, topological_sort
from ._dependency_graph import DependencyGraph

__all__ = ["DependencyGraph", "reachable", "topological_sort"]
