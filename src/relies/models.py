# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for relies.

This module defines the in-memory reliance graph:
- Node: One tracked file, its declared parents, safe flag and touch override
- RelianceGraph: The owned node table with derived children, edge mutation
  and the cycle guard that keeps the parent graph acyclic

Edges point from a child to the parents it relies on. Children are never
stored; they are derived from the parent sets of all nodes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from relies.exceptions import CycleError

logger = logging.getLogger(__name__)


@dataclass
class Node:
    """A tracked file in the reliance graph."""

    path: str  # Canonical repository-relative path
    parents: Set[str] = field(default_factory=set)  # Paths this file relies on
    safe: bool = False  # Excluded as a source of staleness reports
    touch: Optional[datetime] = None  # Manual "at least this fresh" override

    def is_placeholder(self) -> bool:
        """Whether the node carries no state of its own."""
        return not self.parents and not self.safe and self.touch is None


class RelianceGraph:
    """Owned table of nodes with parent edges and derived child edges.

    The parent graph is kept acyclic: every edge insertion goes through
    would_create_cycle() before any state is touched.

    The children index is rebuilt lazily after any change to a parent set,
    so children_of() is O(1) between mutations.
    """

    def __init__(self) -> None:
        self._nodes: Dict[str, Node] = {}
        self._children: Optional[Dict[str, Set[str]]] = None

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._nodes))

    def get_node(self, path: str) -> Optional[Node]:
        return self._nodes.get(path)

    def nodes(self) -> List[Node]:
        """All nodes sorted by path."""
        return [self._nodes[path] for path in sorted(self._nodes)]

    def add_node(self, node: Node) -> None:
        """Insert a fully formed node.

        Raises:
            ValueError: If a node with the same path already exists.
        """
        if node.path in self._nodes:
            raise ValueError(f"Duplicate node: {node.path}")
        self._nodes[node.path] = node
        self._children = None

    def ensure_node(self, path: str) -> Node:
        """Return the node for path, creating an empty placeholder if needed."""
        node = self._nodes.get(path)
        if node is None:
            node = Node(path=path)
            self._nodes[path] = node
            self._children = None
            logger.debug(f"Created node {path}")
        return node

    def parents_of(self, path: str) -> Set[str]:
        node = self._nodes.get(path)
        return set(node.parents) if node is not None else set()

    def children_of(self, path: str) -> Set[str]:
        """Nodes whose parent set contains path."""
        return set(self._children_index().get(path, set()))

    def _children_index(self) -> Dict[str, Set[str]]:
        if self._children is None:
            index: Dict[str, Set[str]] = {}
            for node in self._nodes.values():
                for parent in node.parents:
                    index.setdefault(parent, set()).add(node.path)
            self._children = index
        return self._children

    # =========================================================================
    # Cycle guard
    # =========================================================================

    def would_create_cycle(
        self,
        child: str,
        parent: str,
        parent_map: Optional[Dict[str, Set[str]]] = None,
    ) -> bool:
        """Check whether child relying on parent would close a loop.

        True iff child is parent itself or child is already an ancestor of
        parent. The traversal is uncached because the graph may be mid-edit.

        Args:
            child: File that would gain the parent.
            parent: Prospective parent.
            parent_map: Optional staged parent sets to check against instead of
                        the committed graph.
        """
        if child == parent:
            return True

        def parents(path: str) -> Set[str]:
            if parent_map is not None:
                return parent_map.get(path, set())
            node = self._nodes.get(path)
            return node.parents if node is not None else set()

        visited: Set[str] = set()
        stack: List[str] = [parent]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            for ancestor in parents(current):
                if ancestor == child:
                    return True
                if ancestor not in visited:
                    stack.append(ancestor)
        return False

    # =========================================================================
    # Edge mutation
    # =========================================================================

    def add_edge(self, child: str, parent: str) -> bool:
        """Declare that child relies on parent.

        Returns:
            True if the edge is new, False if it already existed.

        Raises:
            CycleError: If the edge would create a cycle. The graph is unchanged.
        """
        return self.add_edges([(child, parent)]) == 1

    def add_edges(self, pairs: Iterable[Tuple[str, str]]) -> int:
        """Add a batch of (child, parent) edges atomically.

        Every pair is checked against a staged copy of the parent sets that
        already holds the earlier pairs of the batch. If any pair would create
        a cycle nothing from the batch is committed, including placeholder
        nodes for previously unknown files.

        Returns:
            Number of edges that were not already present.

        Raises:
            CycleError: Naming the first offending child and parent.
        """
        staged: Dict[str, Set[str]] = {
            path: set(node.parents) for path, node in self._nodes.items()
        }
        added: List[Tuple[str, str]] = []

        for child, parent in pairs:
            staged.setdefault(child, set())
            staged.setdefault(parent, set())
            if parent in staged[child]:
                continue
            if self.would_create_cycle(child, parent, staged):
                logger.info(f"Rejected reliance {child} -> {parent}: cycle")
                raise CycleError(child, parent)
            staged[child].add(parent)
            added.append((child, parent))

        for path in staged:
            self.ensure_node(path)
        for child, parent in added:
            self._nodes[child].parents.add(parent)
            logger.debug(f"Added reliance {child} -> {parent}")

        if added:
            self._children = None
        return len(added)

    def remove_edge(self, child: str, parent: str) -> bool:
        """Remove the edge child -> parent.

        Returns:
            True if the edge existed, False if this was a no-op.
        """
        node = self._nodes.get(child)
        if node is None or parent not in node.parents:
            return False
        node.parents.discard(parent)
        self._children = None
        logger.debug(f"Removed reliance {child} -> {parent}")
        return True

    def remove_edges(self, pairs: Iterable[Tuple[str, str]]) -> int:
        """Remove a batch of edges; returns how many existed."""
        return sum(1 for child, parent in pairs if self.remove_edge(child, parent))

    def set_safe(self, path: str, safe: bool) -> None:
        self.ensure_node(path).safe = safe

    def set_touch(self, path: str, when: Optional[datetime]) -> None:
        self.ensure_node(path).touch = when

    def prune(self) -> List[str]:
        """Drop placeholder nodes that nothing relies on.

        Returns:
            Sorted list of removed paths.
        """
        children = self._children_index()
        removed = sorted(
            path
            for path, node in self._nodes.items()
            if node.is_placeholder() and not children.get(path)
        )
        for path in removed:
            del self._nodes[path]
        if removed:
            self._children = None
            logger.info(f"Pruned {len(removed)} unreferenced nodes")
        return removed

    # =========================================================================
    # Consistency checks
    # =========================================================================

    def find_cycle(self) -> Optional[List[str]]:
        """Find one cycle in the parent graph.

        Returns:
            The cycle as a list of paths whose first and last entries are the
            same node, or None if the graph is acyclic.
        """
        unvisited, in_progress, done = 0, 1, 2
        state = {path: unvisited for path in self._nodes}

        for start in sorted(self._nodes):
            if state[start] != unvisited:
                continue
            state[start] = in_progress
            trail = [start]
            stack = [iter(sorted(self._nodes[start].parents))]
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    state[trail.pop()] = done
                    continue
                if nxt not in state:
                    continue
                if state[nxt] == in_progress:
                    return trail[trail.index(nxt) :] + [nxt]
                if state[nxt] == unvisited:
                    state[nxt] = in_progress
                    trail.append(nxt)
                    stack.append(iter(sorted(self._nodes[nxt].parents)))
        return None

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate graph structure.

        Checks for:
        - Dangling parents: Parent paths with no node of their own
        - Cycles: Any file that is its own transitive ancestor

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []

        for node in self.nodes():
            for parent in sorted(node.parents):
                if parent not in self._nodes:
                    errors.append(f"Dangling parent: {node.path} -> {parent}")

        cycle = self.find_cycle()
        if cycle is not None:
            errors.append(f"Cycle: {' -> '.join(cycle)}")

        return len(errors) == 0, errors
