# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Persistence for the reliance graph.

Components:
- RelianceStore: Abstract interface for storage backends
- FileStore: Tab-separated store file at the repository root
- InMemoryStore: Process-local backend for tests and embedding

Store file format, one record per node:

    path <TAB> safe <TAB> touch <TAB> parent1 <TAB> parent2 ...

- safe: "0", "1" or empty (same as "0")
- touch: empty, an ISO-8601 timestamp, or integer epoch seconds
- Records written by the oldest versions carry only path and safe
"""

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from relies.exceptions import (
    CorruptStoreError,
    MissingStoreError,
    StoreWriteError,
    ValidationError,
)
from relies.models import Node, RelianceGraph

logger = logging.getLogger(__name__)

DEFAULT_STORE_FILENAME = ".relies"

_SAFE_VALUES = {"": False, "0": False, "1": True}


def has_control_characters(path: str) -> bool:
    return any(ord(c) < 32 for c in path)


def check_storable(path: str) -> None:
    """Reject a path the store format cannot hold.

    Tabs separate fields and newlines separate records, so no control
    character may appear in a stored path.

    Raises:
        ValidationError: If path contains a control character.
    """
    if has_control_characters(path):
        raise ValidationError(f"{path!r} contains control characters and cannot be stored")


def parse_touch(value: str) -> Optional[datetime]:
    """Parse a stored touch override.

    Naive ISO timestamps are read as UTC.

    Raises:
        ValueError: If value is neither empty, ISO-8601, nor epoch seconds.
    """
    if value == "":
        return None
    if value.isdigit():
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    when = datetime.fromisoformat(value)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


def format_touch(when: Optional[datetime]) -> str:
    if when is None:
        return ""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.isoformat()


def parse_record(line: str, source: str = "<store>", line_number: Optional[int] = None) -> Node:
    """Parse one store record into a Node.

    Raises:
        CorruptStoreError: If any field is malformed.
    """
    fields = line.split("\t")
    path = fields[0]
    if not path:
        raise CorruptStoreError(source, "empty path", line_number)
    if has_control_characters(path):
        raise CorruptStoreError(source, f"path contains control characters: {path!r}", line_number)

    safe_field = fields[1] if len(fields) > 1 else ""
    if safe_field not in _SAFE_VALUES:
        raise CorruptStoreError(source, f"invalid safe flag {safe_field!r} for {path}", line_number)

    touch_field = fields[2] if len(fields) > 2 else ""
    try:
        touch = parse_touch(touch_field)
    except ValueError:
        raise CorruptStoreError(
            source, f"invalid touch timestamp {touch_field!r} for {path}", line_number
        ) from None

    parents = fields[3:]
    for parent in parents:
        if not parent:
            raise CorruptStoreError(source, f"empty parent path for {path}", line_number)
        if has_control_characters(parent):
            raise CorruptStoreError(
                source, f"parent path contains control characters: {parent!r}", line_number
            )

    return Node(path=path, parents=set(parents), safe=_SAFE_VALUES[safe_field], touch=touch)


def format_record(node: Node) -> str:
    """Serialize a Node as one store record (without newline).

    Raises:
        ValidationError: If the path or a parent cannot be stored.
    """
    check_storable(node.path)
    for parent in node.parents:
        check_storable(parent)
    fields = [node.path, "1" if node.safe else "0", format_touch(node.touch)]
    fields.extend(sorted(node.parents))
    return "\t".join(fields)


def parse_store(text: str, source: str = "<store>") -> RelianceGraph:
    """Build a RelianceGraph from store file content.

    Records are separated by LF only and a trailing CR is dropped. Other
    line-breaking characters are legal inside paths. Parents without a
    record of their own become placeholder nodes.

    Raises:
        CorruptStoreError: On malformed records, duplicate paths, or cycles.
    """
    graph = RelianceGraph()
    for line_number, line in enumerate(text.split("\n"), start=1):
        if line.endswith("\r"):
            line = line[:-1]
        if not line:
            continue
        node = parse_record(line, source, line_number)
        if node.path in graph:
            raise CorruptStoreError(source, f"duplicate record for {node.path}", line_number)
        graph.add_node(node)

    for node in graph.nodes():
        for parent in node.parents:
            graph.ensure_node(parent)

    cycle = graph.find_cycle()
    if cycle is not None:
        raise CorruptStoreError(source, f"reliance cycle {' -> '.join(cycle)}")
    return graph


def format_store(graph: RelianceGraph) -> str:
    """Serialize every node, sorted by path."""
    return "".join(format_record(node) + "\n" for node in graph.nodes())


class RelianceStore(ABC):
    """Abstract storage interface for the reliance graph.

    A store is read once at the start of an invocation and written once at
    the end of a mutating command.
    """

    @abstractmethod
    def exists(self) -> bool:
        pass

    @abstractmethod
    def load(self) -> RelianceGraph:
        """Load the persisted graph.

        Raises:
            MissingStoreError: If nothing has been persisted yet.
            CorruptStoreError: If the persisted data cannot be parsed.
        """
        pass

    @abstractmethod
    def save(self, graph: RelianceGraph) -> None:
        """Persist the graph, replacing previous contents."""
        pass

    def initialize(self) -> bool:
        """Create an empty store if none exists.

        Returns:
            True if a store was created, False if one already existed.
        """
        if self.exists():
            return False
        self.save(RelianceGraph())
        return True


class FileStore(RelianceStore):
    """Tab-separated store file.

    Writes go to a temporary file in the same directory which then replaces
    the store, so concurrent readers never observe a partial file. Concurrent
    writers are not coordinated: the last one wins.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> RelianceGraph:
        if not self.path.exists():
            raise MissingStoreError(str(self.path), self.path.name)
        if not self.path.is_file():
            raise CorruptStoreError(str(self.path), "not a regular file")
        try:
            text = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptStoreError(str(self.path), f"not valid UTF-8: {e}") from e
        except OSError as e:
            raise CorruptStoreError(str(self.path), f"cannot read it: {e.strerror or e}") from e

        graph = parse_store(text, str(self.path))
        logger.info(f"Loaded {len(graph)} nodes from {self.path}")
        return graph

    def save(self, graph: RelianceGraph) -> None:
        """Atomically replace the store file.

        Raises:
            ValidationError: If a path in the graph cannot be stored.
            StoreWriteError: If the file cannot be written; the previous store is kept.
        """
        content = format_store(graph)
        if self.path.exists() and not self.path.is_file():
            raise StoreWriteError(str(self.path), "not a regular file")
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(self.path)
        except OSError as e:
            self._discard(temp_path)
            raise StoreWriteError(str(self.path), e.strerror or str(e)) from e
        except BaseException:
            self._discard(temp_path)
            raise
        logger.info(f"Saved {len(graph)} nodes to {self.path}")

    @staticmethod
    def _discard(temp_path: Path) -> None:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {temp_path}: {e}")


class InMemoryStore(RelianceStore):
    """Store that keeps the serialized form in memory.

    Goes through the same record format as FileStore so that load() always
    returns an independent graph.
    """

    def __init__(self, content: Optional[str] = None):
        self._content = content

    def exists(self) -> bool:
        return self._content is not None

    def load(self) -> RelianceGraph:
        if self._content is None:
            raise MissingStoreError("<memory>", DEFAULT_STORE_FILENAME)
        return parse_store(self._content, "<memory>")

    def save(self, graph: RelianceGraph) -> None:
        self._content = format_store(graph)

    @property
    def content(self) -> Optional[str]:
        return self._content
