# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Unit tests for the persisted store.

Tests cover:
- Record parsing and formatting
- FileStore load/save, missing and corrupt files
- Atomic replacement of the store file
- InMemoryStore implementation
"""

from datetime import datetime, timedelta, timezone

import pytest

from relies.exceptions import (
    CorruptStoreError,
    MissingStoreError,
    StoreWriteError,
    ValidationError,
)
from relies.models import Node, RelianceGraph
from relies.storage import (
    FileStore,
    InMemoryStore,
    RelianceStore,
    format_record,
    format_store,
    parse_record,
    parse_store,
    parse_touch,
)


class TestRecords:
    """Tests for single-record parsing and formatting."""

    def test_parse_full_record(self):
        node = parse_record("a.c\t1\t2024-03-01T10:00:00+00:00\tb.h\tc.h")

        assert node.path == "a.c"
        assert node.safe is True
        assert node.touch == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
        assert node.parents == {"b.h", "c.h"}

    def test_parse_legacy_two_field_record(self):
        node = parse_record("a.c\t0")

        assert node.path == "a.c"
        assert node.safe is False
        assert node.touch is None
        assert node.parents == set()

    def test_parse_empty_safe_flag(self):
        assert parse_record("a.c\t\t\tb.h").safe is False

    def test_parse_touch_formats(self):
        assert parse_touch("") is None
        assert parse_touch("0") == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert parse_touch("2024-03-01T10:00:00") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
        offset = parse_touch("2024-03-01T10:00:00+02:00")
        assert offset == datetime(2024, 3, 1, 8, tzinfo=timezone.utc)

    def test_format_record_sorts_parents(self):
        node = Node(path="a.c", parents={"z.h", "b.h"})

        assert format_record(node) == "a.c\t0\t\tb.h\tz.h"

    def test_format_record_preserves_offset(self):
        when = datetime(2024, 3, 1, 10, tzinfo=timezone(timedelta(hours=2)))
        node = Node(path="a.c", safe=True, touch=when)

        assert format_record(node) == "a.c\t1\t2024-03-01T10:00:00+02:00"

    @pytest.mark.parametrize("path", ["a\tb.c", "a\nb.c", "a\rb.c"])
    def test_format_record_rejects_separators(self, path):
        with pytest.raises(ValidationError, match="cannot be stored"):
            format_record(Node(path=path))
        with pytest.raises(ValidationError, match="cannot be stored"):
            format_record(Node(path="a.c", parents={path}))

    @pytest.mark.parametrize(
        "line, reason",
        [
            ("a.c\tyes", "invalid safe flag"),
            ("a.c\t0\tnot-a-time", "invalid touch timestamp"),
            ("a.c\t0\t\tb.h\t", "empty parent path"),
            ("\t0", "empty path"),
            ("a\x01.c\t0", "control characters"),
        ],
    )
    def test_parse_malformed_record(self, line, reason):
        with pytest.raises(CorruptStoreError, match=reason) as exc_info:
            parse_record(line, "store", 7)

        assert exc_info.value.line_number == 7
        assert "store:7" in str(exc_info.value)


class TestParseStore:
    """Tests for whole-store parsing."""

    def test_placeholder_parents_created(self):
        graph = parse_store("a.c\t0\t\tb.h\n")

        assert sorted(graph) == ["a.c", "b.h"]
        assert graph.get_node("b.h").is_placeholder()

    def test_blank_lines_skipped(self):
        graph = parse_store("\na.c\t0\t\tb.h\n\n")

        assert len(graph) == 2

    def test_crlf_line_endings(self):
        graph = parse_store("a.c\t0\t\tb.h\r\nb.h\t1\r\n")

        assert graph.get_node("a.c").parents == {"b.h"}
        assert graph.get_node("b.h").safe

    @pytest.mark.parametrize("path", ["a\u2028b.c", "a\x85b.c", "a\u2029b.c", "a b.c", "café.h"])
    def test_unusual_characters_survive_save_and_load(self, path):
        graph = RelianceGraph()
        graph.add_edge(path, "b.h")
        graph.add_edge("d.c", path)

        loaded = parse_store(format_store(graph))

        assert sorted(loaded) == sorted(graph)
        assert loaded.get_node(path).parents == {"b.h"}
        assert loaded.get_node("d.c").parents == {path}

    def test_vertical_tab_rejected_before_writing(self):
        graph = RelianceGraph()
        graph.add_edge("a\x0bb.c", "b.h")

        with pytest.raises(ValidationError, match="control characters"):
            format_store(graph)

    def test_duplicate_record_rejected(self):
        with pytest.raises(CorruptStoreError, match="duplicate record for a.c"):
            parse_store("a.c\t0\na.c\t1\n")

    def test_cycle_rejected(self):
        with pytest.raises(CorruptStoreError, match="reliance cycle"):
            parse_store("a\t0\t\tb\nb\t0\t\ta\n")

    def test_format_parse_preserves_graph(self):
        graph = RelianceGraph()
        graph.add_edges([("a.c", "b.h"), ("a.c", "c.h"), ("b.h", "c.h")])
        graph.set_safe("c.h", True)
        graph.set_touch("b.h", datetime(2024, 3, 1, tzinfo=timezone.utc))
        store = InMemoryStore()

        store.save(graph)
        loaded = store.load()

        for path in graph:
            assert loaded.get_node(path) == graph.get_node(path)


class TestFileStore:
    """Tests for FileStore implementation."""

    def test_is_relies_store(self, tmp_path):
        assert isinstance(FileStore(tmp_path / ".relies"), RelianceStore)

    def test_missing_store(self, tmp_path):
        store = FileStore(tmp_path / ".relies")

        assert not store.exists()
        with pytest.raises(MissingStoreError, match="run 'relies init'"):
            store.load()

    def test_initialize(self, tmp_path):
        store = FileStore(tmp_path / ".relies")

        assert store.initialize() is True
        assert store.exists()
        assert (tmp_path / ".relies").read_text() == ""
        assert len(store.load()) == 0
        assert store.initialize() is False

    def test_save_and_load(self, tmp_path):
        store = FileStore(tmp_path / ".relies")
        graph = RelianceGraph()
        graph.add_edges([("src/a.c", "include/b.h")])
        graph.set_safe("include/b.h", True)

        store.save(graph)

        assert (tmp_path / ".relies").read_text() == "include/b.h\t1\t\nsrc/a.c\t0\t\tinclude/b.h\n"
        loaded = store.load()
        assert loaded.parents_of("src/a.c") == {"include/b.h"}
        assert loaded.get_node("include/b.h").safe is True

    def test_save_leaves_no_temp_file(self, tmp_path):
        store = FileStore(tmp_path / ".relies")

        store.save(RelianceGraph())

        assert sorted(p.name for p in tmp_path.iterdir()) == [".relies"]

    def test_failed_save_keeps_previous_store(self, tmp_path, monkeypatch):
        path = tmp_path / ".relies"
        path.write_text("a.c\t0\t\tb.h\n")
        store = FileStore(path)
        graph = store.load()
        graph.add_edge("a.c", "c.h")

        def fail(self, target):
            raise OSError("disk full")

        monkeypatch.setattr(type(path), "replace", fail)
        with pytest.raises(StoreWriteError, match="disk full"):
            store.save(graph)

        assert path.read_text() == "a.c\t0\t\tb.h\n"
        assert not (tmp_path / ".relies.tmp").exists()

    def test_store_path_is_directory(self, tmp_path):
        path = tmp_path / ".relies"
        path.mkdir()
        store = FileStore(path)

        assert not store.exists()
        with pytest.raises(CorruptStoreError, match="not a regular file"):
            store.load()
        with pytest.raises(StoreWriteError, match="not a regular file"):
            store.initialize()
        assert not (tmp_path / ".relies.tmp").exists()

    def test_unwritable_directory(self, tmp_path):
        store = FileStore(tmp_path / "missing" / ".relies")

        with pytest.raises(StoreWriteError):
            store.save(RelianceGraph())

    def test_unicode_paths_on_disk(self, tmp_path):
        graph = RelianceGraph()
        graph.add_edge("café.h", "a b.h")
        store = FileStore(tmp_path / ".relies")

        store.save(graph)

        assert store.load().get_node("café.h").parents == {"a b.h"}

    def test_corrupt_store(self, tmp_path):
        path = tmp_path / ".relies"
        path.write_text("a.c\t0\nb.c\tmaybe\n")

        with pytest.raises(CorruptStoreError) as exc_info:
            FileStore(path).load()

        assert exc_info.value.line_number == 2

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / ".relies"
        path.write_bytes(b"a\xff.c\t0\n")

        with pytest.raises(CorruptStoreError, match="not valid UTF-8"):
            FileStore(path).load()


class TestInMemoryStore:
    """Tests for InMemoryStore implementation."""

    def test_initialization(self):
        store = InMemoryStore()

        assert not store.exists()
        assert store.content is None
        with pytest.raises(MissingStoreError):
            store.load()

    def test_loads_independent_graphs(self):
        store = InMemoryStore("a.c\t0\t\tb.h\n")

        first = store.load()
        first.add_edge("a.c", "c.h")

        assert store.load().parents_of("a.c") == {"b.h"}

    def test_save_updates_content(self):
        store = InMemoryStore()
        graph = RelianceGraph()
        graph.add_edge("a.c", "b.h")

        store.save(graph)

        assert store.content == "a.c\t0\t\tb.h\nb.h\t0\t\n"
