# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Transitive ancestor and descendant closure over a RelianceGraph.

The engine memoises every closure it computes. Build one engine per command
invocation: the cache is never invalidated, so it must not outlive a
mutation of the graph.
"""

from typing import Callable, Dict, FrozenSet, List, Set, Tuple

from relies.models import RelianceGraph


class ClosureEngine:
    """Memoised ancestor/descendant closure for one invocation.

    Usage:
        closure = ClosureEngine(graph)
        closure.ancestors("src/a.c")
    """

    def __init__(self, graph: RelianceGraph):
        self.graph = graph
        self._ancestors: Dict[str, FrozenSet[str]] = {}
        self._descendants: Dict[str, FrozenSet[str]] = {}

    def ancestors(self, path: str) -> Set[str]:
        """All files reachable by following parent edges, excluding path."""
        return set(self._closure(path, self.graph.parents_of, self._ancestors))

    def descendants(self, path: str) -> Set[str]:
        """All files reachable by following child edges, excluding path."""
        return set(self._closure(path, self.graph.children_of, self._descendants))

    def ancestor_edges(self, path: str) -> List[Tuple[str, str]]:
        """(child, parent) edges of the subgraph above path, sorted."""
        members = self.ancestors(path) | {path}
        return sorted(
            (member, parent) for member in members for parent in self.graph.parents_of(member)
        )

    def descendant_edges(self, path: str) -> List[Tuple[str, str]]:
        """(child, parent) edges of the subgraph below path, sorted."""
        members = self.descendants(path) | {path}
        return sorted(
            (child, member) for member in members for child in self.graph.children_of(member)
        )

    def _closure(
        self,
        path: str,
        neighbours: Callable[[str], Set[str]],
        memo: Dict[str, FrozenSet[str]],
    ) -> FrozenSet[str]:
        """Depth-first closure with an explicit stack.

        Neighbours whose closure is already memoised contribute it wholesale
        instead of being walked again.
        """
        cached = memo.get(path)
        if cached is not None:
            return cached

        reached: Set[str] = set()
        stack: List[str] = list(neighbours(path))
        while stack:
            current = stack.pop()
            if current in reached:
                continue
            reached.add(current)
            known = memo.get(current)
            if known is not None:
                reached |= known
                continue
            stack.extend(n for n in neighbours(current) if n not in reached)

        reached.discard(path)
        result = frozenset(reached)
        memo[path] = result
        return result
