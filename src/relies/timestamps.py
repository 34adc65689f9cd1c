# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Last-modified resolution for tracked files.

A file's last-modified instant is defined as:
- If it has uncommitted local changes: the filesystem mtime
- Otherwise: the timestamp of the last commit touching it
- Raised to the node's touch override when the override is later
"""

import logging
from datetime import datetime
from typing import Dict

from relies.models import RelianceGraph
from relies.vcs import VersionControl

logger = logging.getLogger(__name__)


class TimestampResolver:
    """Resolves and caches last-modified instants for one invocation."""

    def __init__(self, graph: RelianceGraph, vcs: VersionControl):
        self.graph = graph
        self.vcs = vcs
        self._cache: Dict[str, datetime] = {}

    def is_modified(self, path: str) -> bool:
        return self.vcs.is_modified(path)

    def last_modified(self, path: str) -> datetime:
        """Resolve the last-modified instant of path.

        Raises:
            TimestampFormatError: If path is unmodified and version control
                                  cannot produce a commit timestamp.
        """
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        if self.vcs.is_modified(path):
            when = self.vcs.filesystem_mtime(path)
            source = "filesystem"
        else:
            when = self.vcs.last_commit_time(path)
            source = "commit"

        node = self.graph.get_node(path)
        if node is not None and node.touch is not None and node.touch > when:
            when = node.touch
            source = "touch"

        logger.debug(f"{path} last modified {when.isoformat()} ({source})")
        self._cache[path] = when
        return when
