# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Staleness evaluation for declared reliances.

A file is stale when something it relies on, directly or transitively, was
modified after it. The evaluator reports both directions:
- Young ancestors: ancestors strictly newer than the file
- Old descendants: descendants strictly older than the file

Safe policy: a safe file is never reported as a young ancestor or an old
descendant of anything. Staleness still propagates through it, so if
A relies on B (safe) which relies on C, a change to C is still reported
against A.

Comparisons are strict; equal timestamps never count as stale.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from relies.classifier import classify
from relies.closure import ClosureEngine
from relies.models import RelianceGraph
from relies.timestamps import TimestampResolver

logger = logging.getLogger(__name__)


@dataclass
class NodeReport:
    """Everything a renderer needs to show one file."""

    path: str
    category: str  # StatusCategory value
    safe: bool
    modified: bool
    young_ancestors: List[str]
    old_descendants: List[str] = field(default_factory=list)
    ancestors: Optional[List[str]] = None  # Only populated for full reports

    @property
    def is_stale(self) -> bool:
        return bool(self.young_ancestors)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "path": self.path,
            "category": self.category,
            "safe": self.safe,
            "modified": self.modified,
            "young_ancestors": self.young_ancestors,
            "old_descendants": self.old_descendants,
        }
        if self.ancestors is not None:
            result["ancestors"] = self.ancestors
        return result


class StalenessEvaluator:
    """Combines closure and timestamps into staleness reports.

    Usage:
        evaluator = StalenessEvaluator(graph, ClosureEngine(graph), resolver)
        evaluator.young_ancestors("src/a.c")
    """

    def __init__(
        self,
        graph: RelianceGraph,
        closure: ClosureEngine,
        timestamps: TimestampResolver,
    ):
        self.graph = graph
        self.closure = closure
        self.timestamps = timestamps

    def is_safe(self, path: str) -> bool:
        node = self.graph.get_node(path)
        return node is not None and node.safe

    def young_ancestors(self, path: str) -> List[str]:
        """Non-safe ancestors modified strictly after path, sorted."""
        ancestors = self.closure.ancestors(path)
        if not ancestors:
            return []
        own_time = self.timestamps.last_modified(path)
        return sorted(
            ancestor
            for ancestor in ancestors
            if not self.is_safe(ancestor)
            and self.timestamps.last_modified(ancestor) > own_time
        )

    def old_descendants(self, path: str) -> List[str]:
        """Non-safe descendants modified strictly before path, sorted."""
        descendants = self.closure.descendants(path)
        if not descendants:
            return []
        own_time = self.timestamps.last_modified(path)
        return sorted(
            descendant
            for descendant in descendants
            if not self.is_safe(descendant)
            and self.timestamps.last_modified(descendant) < own_time
        )

    def category(self, path: str) -> str:
        """StatusCategory of path."""
        return classify(
            self.is_safe(path),
            self.timestamps.is_modified(path),
            bool(self.young_ancestors(path)),
        )

    def report(self, path: str, full: bool = False, descendants: bool = False) -> NodeReport:
        """Build a NodeReport for path.

        Args:
            path: Canonical path to report on.
            full: Also list every ancestor, not only the young ones.
            descendants: Also compute old descendants.
        """
        young = self.young_ancestors(path)
        safe = self.is_safe(path)
        modified = self.timestamps.is_modified(path)
        report = NodeReport(
            path=path,
            category=classify(safe, modified, bool(young)),
            safe=safe,
            modified=modified,
            young_ancestors=young,
            old_descendants=self.old_descendants(path) if descendants else [],
            ancestors=sorted(self.closure.ancestors(path)) if full else None,
        )
        logger.debug(
            f"{path}: {report.category}, {len(young)} young ancestors, "
            f"{len(report.old_descendants)} old descendants"
        )
        return report
