# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""RelianceService - command orchestration for relies.

One service instance serves one command invocation:
- Validate and canonicalise every file argument before touching the store
- Load the store, apply mutations, and save only when all of them succeeded
- Build the per-invocation closure/timestamp caches for read commands

Caches are never shared between invocations because files and version
control history may change in between.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from relies.closure import ClosureEngine
from relies.config import Config
from relies.exceptions import MissingStoreError, ValidationError
from relies.models import RelianceGraph
from relies.staleness_resolver import NodeReport, StalenessEvaluator
from relies.storage import FileStore, RelianceStore, check_storable
from relies.timestamps import TimestampResolver
from relies.vcs import VersionControl

logger = logging.getLogger(__name__)

T = TypeVar("T")
UserPath = Union[str, Path]


@dataclass
class Session:
    """Read-side view of the graph for one invocation."""

    graph: RelianceGraph
    closure: ClosureEngine
    timestamps: TimestampResolver
    evaluator: StalenessEvaluator


class RelianceService:
    """Business logic coordinator for relies commands.

    Owned Components:
    - VersionControl: File status, commit times, path canonicalisation
    - RelianceStore: Persisted graph
    - Config: Store location and display defaults
    """

    def __init__(
        self,
        vcs: VersionControl,
        store: Optional[RelianceStore] = None,
        config: Optional[Config] = None,
    ):
        self.vcs = vcs
        self.config = config if config is not None else Config(root=vcs.root)
        self.store = (
            store if store is not None else FileStore(vcs.root / self.config.store_filename)
        )
        self._session: Optional[Session] = None

    # =========================================================================
    # Paths and loading
    # =========================================================================

    def resolve_paths(self, paths: Iterable[UserPath]) -> List[str]:
        """Canonicalise user paths, dropping duplicates but keeping order.

        Raises:
            ValidationError: On the first path that is not a tracked file
                             or cannot be stored.
        """
        resolved: List[str] = []
        for path in paths:
            canonical = self.vcs.resolve(path)
            check_storable(canonical)
            if canonical not in resolved:
                resolved.append(canonical)
        return resolved

    def _resolve_known(self, paths: Iterable[UserPath], graph: RelianceGraph) -> List[str]:
        """Like resolve_paths(), but also accept canonical paths already in the graph.

        Lets users detach reliances on files that were deleted or untracked.
        """
        resolved: List[str] = []
        for path in paths:
            try:
                canonical = self.vcs.resolve(path)
            except ValidationError:
                candidate = Path(path).as_posix()
                if candidate not in graph:
                    raise
                canonical = candidate
            check_storable(canonical)
            if canonical not in resolved:
                resolved.append(canonical)
        return resolved

    def load_graph(self, create_missing: bool = False) -> RelianceGraph:
        """Load the persisted graph.

        Raises:
            MissingStoreError: If no store exists and create_missing is False.
            CorruptStoreError: If the store cannot be parsed.
        """
        try:
            return self.store.load()
        except MissingStoreError:
            if not create_missing:
                raise
            logger.info("No store yet, starting from an empty graph")
            return RelianceGraph()

    def init_store(self) -> bool:
        """Create an empty store. Returns False if one already existed."""
        created = self.store.initialize()
        if created:
            logger.info("Initialized empty store")
        return created

    def _mutate(self, graph: RelianceGraph, change: Callable[[RelianceGraph], T]) -> T:
        result = change(graph)
        self.store.save(graph)
        self._session = None
        return result

    # =========================================================================
    # Mutating commands
    # =========================================================================

    def add_reliances(self, children: Sequence[UserPath], parents: Sequence[UserPath]) -> int:
        """Make every child rely on every parent, all or nothing.

        Returns:
            Number of new edges.

        Raises:
            ValidationError: If any file is not tracked or cannot be stored.
            CycleError: If any edge would create a cycle. Nothing is written.
        """
        child_paths = self.resolve_paths(children)
        parent_paths = self.resolve_paths(parents)
        graph = self.load_graph(create_missing=True)
        pairs = [(child, parent) for child in child_paths for parent in parent_paths]
        added = self._mutate(graph, lambda g: g.add_edges(pairs))
        logger.info(f"Added {added} of {len(pairs)} reliances")
        return added

    def remove_reliances(self, children: Sequence[UserPath], parents: Sequence[UserPath]) -> int:
        """Remove every child -> parent edge. Returns how many existed."""
        graph = self.load_graph(create_missing=True)
        child_paths = self._resolve_known(children, graph)
        parent_paths = self._resolve_known(parents, graph)
        pairs = [(child, parent) for child in child_paths for parent in parent_paths]
        removed = self._mutate(graph, lambda g: g.remove_edges(pairs))
        logger.info(f"Removed {removed} of {len(pairs)} reliances")
        return removed

    def set_safe(self, files: Sequence[UserPath], safe: bool) -> List[str]:
        """Set or clear the safe flag. Returns the canonical paths."""
        paths = self.resolve_paths(files)
        graph = self.load_graph(create_missing=True)

        def change(g: RelianceGraph) -> None:
            for path in paths:
                g.set_safe(path, safe)

        self._mutate(graph, change)
        return paths

    def touch(self, files: Sequence[UserPath], when: Optional[datetime] = None) -> datetime:
        """Set the touch override of files to when (default: now).

        Returns:
            The timestamp that was stored.
        """
        paths = self.resolve_paths(files)
        if when is None:
            when = datetime.now(timezone.utc)
        elif when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        graph = self.load_graph(create_missing=True)

        def change(g: RelianceGraph) -> None:
            for path in paths:
                g.set_touch(path, when)

        self._mutate(graph, change)
        return when

    def untouch(self, files: Sequence[UserPath]) -> List[str]:
        """Clear the touch override of files."""
        graph = self.load_graph(create_missing=True)
        paths = self._resolve_known(files, graph)

        def change(g: RelianceGraph) -> None:
            for path in paths:
                if path in g:
                    g.set_touch(path, None)

        self._mutate(graph, change)
        return paths

    def prune(self) -> List[str]:
        """Drop unreferenced placeholder nodes. Returns removed paths."""
        graph = self.load_graph()
        return self._mutate(graph, lambda g: g.prune())

    # =========================================================================
    # Read commands
    # =========================================================================

    def session(self) -> Session:
        """The read-side session, loading the store on first use.

        Raises:
            MissingStoreError: If no store exists.
        """
        if self._session is None:
            graph = self.load_graph()
            closure = ClosureEngine(graph)
            timestamps = TimestampResolver(graph, self.vcs)
            self._session = Session(
                graph=graph,
                closure=closure,
                timestamps=timestamps,
                evaluator=StalenessEvaluator(graph, closure, timestamps),
            )
        return self._session

    def category(self, path: str) -> str:
        """StatusCategory of a canonical path."""
        return self.session().evaluator.category(path)

    def status(
        self,
        files: Sequence[UserPath] = (),
        full: bool = False,
        descendants: bool = False,
    ) -> List[NodeReport]:
        """Staleness reports for files, or for every tracked node if none given.

        Safe files are left out of the all-files report unless full is set.
        """
        paths = self.resolve_paths(files) if files else None
        session = self.session()
        skip_safe = paths is None and not full
        if paths is None:
            paths = list(session.graph)

        reports: List[NodeReport] = []
        for path in paths:
            if skip_safe and session.evaluator.is_safe(path):
                continue
            reports.append(session.evaluator.report(path, full=full, descendants=descendants))
        return reports

    def parents(self, file: UserPath) -> List[str]:
        """Direct parents of file, sorted."""
        path = self.resolve_paths([file])[0]
        return sorted(self.session().graph.parents_of(path))

    def children(self, file: UserPath) -> List[str]:
        """Direct children of file, sorted."""
        path = self.resolve_paths([file])[0]
        return sorted(self.session().graph.children_of(path))
