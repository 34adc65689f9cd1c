# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Text rendering for reports and reliance graphs.

Colour scheme:
- Green: no local modifications, no reliance problems
- Blue: safe, no local modifications
- Magenta: safe, with local modifications
- Yellow: local modifications, no reliance problems
- Red: reliance problems
"""

from typing import Callable, Dict, Iterable, List, Set

from colorama import Fore, Style

from relies.classifier import StatusCategory
from relies.staleness_resolver import NodeReport

CATEGORY_COLORS: Dict[str, str] = {
    StatusCategory.SAFE_CLEAN: Fore.BLUE,
    StatusCategory.SAFE_MODIFIED: Fore.MAGENTA,
    StatusCategory.STALE: Fore.RED,
    StatusCategory.MODIFIED: Fore.YELLOW,
    StatusCategory.CLEAN: Fore.GREEN,
}

_BRANCH = "├── "
_LAST_BRANCH = "└── "
_PIPE = "│   "
_SPACE = "    "


class Renderer:
    """Renders paths, reports and trees as lines of text.

    Args:
        category_of: Returns the StatusCategory of a path.
        color: Whether to wrap paths in ANSI colour codes.
    """

    def __init__(self, category_of: Callable[[str], str], color: bool = True):
        self.category_of = category_of
        self.color = color

    def path(self, path: str) -> str:
        """A path coloured by its status."""
        if not self.color:
            return path
        return f"{CATEGORY_COLORS[self.category_of(path)]}{path}{Style.RESET_ALL}"

    def report(self, report: NodeReport) -> List[str]:
        """Lines describing one NodeReport.

        Nothing is produced when there is nothing to say: no listed
        ancestors and no old descendants.
        """
        lines: List[str] = []
        antecessors = report.ancestors if report.ancestors is not None else report.young_ancestors
        if antecessors:
            lines.append(f"{self.path(report.path)} relies on")
            lines.extend(f"   {self.path(ancestor)}" for ancestor in antecessors)
        if report.old_descendants:
            lines.append(f"{self.path(report.path)} is relied on by older")
            lines.extend(f"   {self.path(descendant)}" for descendant in report.old_descendants)
        return lines

    def listing(self, paths: Iterable[str]) -> List[str]:
        """One coloured path per line, sorted."""
        return [self.path(path) for path in sorted(paths)]

    def tree(self, root: str, neighbours: Callable[[str], Set[str]]) -> List[str]:
        """Draw the subgraph reachable from root as an ASCII tree.

        A node reached a second time is drawn once more but not expanded
        again; it is marked with "(see above)".
        """
        lines = [self.path(root)]
        expanded: Set[str] = {root}
        # (path, prefix, is_last)
        stack = [
            (child, "", i == 0) for i, child in enumerate(sorted(neighbours(root), reverse=True))
        ]

        while stack:
            path, prefix, is_last = stack.pop()
            connector = _LAST_BRANCH if is_last else _BRANCH
            children = sorted(neighbours(path))
            if path in expanded and children:
                lines.append(f"{prefix}{connector}{self.path(path)} (see above)")
                continue
            lines.append(f"{prefix}{connector}{self.path(path)}")
            expanded.add(path)
            child_prefix = prefix + (_SPACE if is_last else _PIPE)
            for i, child in enumerate(reversed(children)):
                stack.append((child, child_prefix, i == 0))
        return lines
