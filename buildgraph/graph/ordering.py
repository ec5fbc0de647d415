"""Deterministic build ordering over a dependency ``networkx.DiGraph``.

Edges point from a project to its dependency. The walk records, for every
reachable project, the deepest position at which it was seen; sorting by
depth (descending) then name puts every dependency before its dependents
and makes the order reproducible across runs.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from buildgraph.errors import DependencyCycleError

logger = logging.getLogger("buildgraph.graph.ordering")


def canonical_cycle(cycle: List[str]) -> Tuple[str, ...]:
    """Rotate a cycle so it starts at its smallest name."""
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])


class OrderedGraphBuilder:
    """Depth-map walk over a dependency graph.

    A node is re-explored whenever it is reached at a greater depth than
    before, so once the walk finishes every subtree has been explored at
    its final depth and each dependency sits strictly deeper than any
    project depending on it.

    Attributes:
        graph: Dependency graph (project -> dependency edges).
        depth_map: Maximum depth seen per reached node.
        cycles: Cycle paths found, each listed once in walk order.
    """

    def __init__(self, graph: nx.DiGraph) -> None:
        self.graph = graph
        self.depth_map: Dict[str, int] = {}
        self.cycles: List[List[str]] = []
        self._seen_cycles: set = set()

    def insert(self, node: str, depth: int, stack: Optional[List[str]] = None) -> bool:
        """Insert ``node`` at ``depth`` and walk its dependencies.

        Args:
            node: Project name.
            depth: Depth of ``node`` in this walk.
            stack: Projects on the current path, outermost first.

        Returns:
            False if a cycle was reached from ``node``.
        """
        stack = stack if stack is not None else []
        if node in stack:
            cycle = stack[stack.index(node):]
            key = canonical_cycle(cycle)
            if key not in self._seen_cycles:
                self._seen_cycles.add(key)
                self.cycles.append(cycle)
                logger.error(
                    "Recursive project dependencies found when project '%s' was encountered second time: %s",
                    node,
                    " -> ".join(cycle + [node]),
                )
            return False

        if depth <= self.depth_map.get(node, 0):
            return True

        self.depth_map[node] = depth
        stack.append(node)
        try:
            for dep in self.graph.successors(node):
                if not self.insert(dep, depth + 1, stack):
                    return False
        finally:
            stack.pop()
        return True

    def ordered(self) -> List[str]:
        """Reached nodes by depth descending, then name ascending."""
        pairs = sorted(self.depth_map.items(), key=lambda item: (-item[1], item[0]))
        return [name for name, _ in pairs]


def transitive_dependencies(graph: nx.DiGraph, project: str) -> List[str]:
    """Ordered transitive dependencies of ``project`` (excluding itself).

    Raises:
        DependencyCycleError: If a cycle is reachable from ``project``.
    """
    walk = OrderedGraphBuilder(graph)
    stack = [project]
    for dep in graph.successors(project):
        walk.insert(dep, 1, stack)
    if walk.cycles:
        raise DependencyCycleError(walk.cycles)
    return walk.ordered()


def build_order(graph: nx.DiGraph, roots: Optional[Iterable[str]] = None) -> List[str]:
    """Global emission order of ``roots`` (default: every node).

    Raises:
        DependencyCycleError: If any walk reaches a cycle.
    """
    walk = OrderedGraphBuilder(graph)
    for node in roots if roots is not None else list(graph.nodes):
        walk.insert(node, 1, [])
    if walk.cycles:
        raise DependencyCycleError(walk.cycles)
    return walk.ordered()
