# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures: a scripted stand-in for git, a real throwaway repository
and fixed timestamps."""

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Set, Union

import pytest
from git import Repo

from relies.exceptions import TimestampFormatError, ValidationError
from relies.vcs import VersionControl

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def hours(n: float) -> datetime:
    """A fixed instant n hours after 2024-01-01T00:00Z."""
    return EPOCH + timedelta(hours=n)


class FakeVersionControl(VersionControl):
    """VersionControl with scripted commit times and working-tree state.

    Files registered with track() are created under root so that FileStore
    and path resolution behave as they would in a real checkout.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.tracked: Set[str] = set()
        self.modified: Set[str] = set()
        self.commit_times: Dict[str, datetime] = {}
        self.mtimes: Dict[str, datetime] = {}
        self.commit_lookups = 0

    def track(self, path: str, committed: datetime, modified_at: Optional[datetime] = None) -> str:
        file_path = self.root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(f"{path}\n")
        self.tracked.add(path)
        self.commit_times[path] = committed
        if modified_at is not None:
            self.modify(path, modified_at)
        return path

    def modify(self, path: str, when: datetime) -> None:
        self.modified.add(path)
        self.mtimes[path] = when

    def commit(self, path: str, when: datetime) -> None:
        self.modified.discard(path)
        self.commit_times[path] = when

    def modified_paths(self) -> Set[str]:
        return set(self.modified)

    def last_commit_time(self, path: str) -> datetime:
        self.commit_lookups += 1
        if path not in self.commit_times:
            raise TimestampFormatError(f"git has no commit history for {path}")
        return self.commit_times[path]

    def filesystem_mtime(self, path: str) -> datetime:
        if path not in self.mtimes:
            raise ValidationError(f"Can't find file {path}")
        return self.mtimes[path]

    def resolve(self, user_path: Union[str, Path]) -> str:
        candidate = Path(user_path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.root)
            except ValueError:
                raise ValidationError(f"{user_path} is outside the repository") from None
        canonical = candidate.as_posix()
        if canonical not in self.tracked:
            raise ValidationError(f"Can't find file {user_path}")
        return canonical


@pytest.fixture
def vcs(tmp_path):
    """A FakeVersionControl rooted at a fresh temporary directory."""
    return FakeVersionControl(tmp_path)


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """A git repository, current directory included.

    src/a.c and b.h are committed at 2024-01-01 10:00 UTC, then b.h again at
    2024-01-02 07:30 UTC (written with a +02:00 offset).
    """
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")

    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "a.c").write_text("int a;\n")
    (root / "b.h").write_text("#define B\n")

    repo = Repo.init(root)
    with repo.config_writer() as writer:
        writer.set_value("commit", "gpgsign", "false")

    def commit(message, *paths, date="2024-01-01T10:00:00+00:00"):
        monkeypatch.setenv("GIT_AUTHOR_DATE", date)
        monkeypatch.setenv("GIT_COMMITTER_DATE", date)
        repo.git.add("--", *paths)
        repo.git.commit("-q", "-m", message)

    commit("initial", "src/a.c", "b.h")
    (root / "b.h").write_text("#define B 2\n")
    commit("b", "b.h", date="2024-01-02T09:30:00+02:00")
    repo.close()

    monkeypatch.chdir(root)
    return root
