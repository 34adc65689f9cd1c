# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Version-control collaborator.

The core asks version control three things about a file: does it have
uncommitted changes, when was it last committed, and what is its canonical
repository-relative path. VersionControl is the abstract interface;
GitClient answers through GitPython.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Set, Union

from git import Repo
from git.exc import (
    GitCommandError,
    GitCommandNotFound,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from relies.exceptions import TimestampFormatError, ValidationError, VersionControlError

logger = logging.getLogger(__name__)

# Output of `git log --date=iso`, e.g. "2024-03-01 14:02:11 +0100"
_GIT_ISO_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2}) ([+-]\d{4})$")


def parse_git_date(value: str) -> datetime:
    """Parse a `git log --date=iso` timestamp into an aware datetime.

    Raises:
        TimestampFormatError: If value is not in git's iso format.
    """
    match = _GIT_ISO_DATE.match(value.strip())
    if match is None:
        raise TimestampFormatError(
            f"'git log --date=iso' returned a non-ISO8601 formatted date: {value.strip()!r}"
        )
    date, time, offset = match.groups()
    try:
        return datetime.strptime(f"{date} {time} {offset}", "%Y-%m-%d %H:%M:%S %z")
    except ValueError as e:
        raise TimestampFormatError(f"Invalid git date {value.strip()!r}: {e}") from e


class VersionControl(ABC):
    """Abstract version-control interface consumed by the core.

    Paths passed to every method except resolve() are canonical
    repository-relative paths with forward slashes.
    """

    root: Path

    @abstractmethod
    def modified_paths(self) -> Set[str]:
        """All tracked paths with uncommitted changes in the working tree."""
        pass

    def is_modified(self, path: str) -> bool:
        return path in self.modified_paths()

    @abstractmethod
    def last_commit_time(self, path: str) -> datetime:
        """Timestamp of the latest commit touching path.

        Raises:
            TimestampFormatError: If no parseable timestamp is available.
        """
        pass

    @abstractmethod
    def filesystem_mtime(self, path: str) -> datetime:
        """Last write time of the working-tree file."""
        pass

    @abstractmethod
    def resolve(self, user_path: Union[str, Path]) -> str:
        """Canonical repository-relative path of a user-supplied path.

        Raises:
            ValidationError: If the file is missing, not a regular file,
                             outside the repository, or not tracked.
        """
        pass


class GitClient(VersionControl):
    """VersionControl backed by a GitPython repository.

    Working-tree status is read with a single `git status` call and cached,
    commit timestamps are cached per path. Create one client per invocation.
    Every path exchanged with git goes through NUL-separated (-z) output so
    names are never quoted or escaped.
    """

    def __init__(self, root: Optional[Path] = None):
        """Initialize the client.

        Args:
            root: Any directory inside the repository. Default: the current directory.

        Raises:
            VersionControlError: If the directory is not inside a git work tree.
        """
        start = Path(root) if root is not None else Path.cwd()
        try:
            self.repo = Repo(start, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise VersionControlError("Not inside a git repository") from None
        if self.repo.working_tree_dir is None:
            raise VersionControlError(f"{self.repo.git_dir} is a bare repository")

        self.root = Path(self.repo.working_tree_dir).resolve()
        self._modified: Optional[Set[str]] = None
        self._commit_times: Dict[str, datetime] = {}

    def _run(self, command: str, *args: str) -> str:
        """Run `git <command> <args>` in the work tree and return its stdout."""
        logger.debug(f"Running git {command} {' '.join(args)}")
        try:
            return str(getattr(self.repo.git, command.replace("-", "_"))(*args))
        except GitCommandNotFound as e:
            raise VersionControlError(f"Unable to run git: {e}") from e
        except GitCommandError as e:
            stderr = str(e.stderr).strip()
            raise VersionControlError(f"git {command} failed: {stderr}") from e

    def modified_paths(self) -> Set[str]:
        if self._modified is None:
            self._modified = self._parse_status(
                self._run("status", "--porcelain", "-z", "--untracked-files=no")
            )
            logger.debug(f"{len(self._modified)} modified paths in working tree")
        return self._modified

    @staticmethod
    def _parse_status(output: str) -> Set[str]:
        """Parse `git status --porcelain -z` output.

        Entries are "XY path"; renames and copies carry the original path as
        an extra NUL-separated field, which is skipped.
        """
        modified: Set[str] = set()
        fields = output.split("\0")
        i = 0
        while i < len(fields):
            entry = fields[i]
            i += 1
            if len(entry) < 4:
                continue
            status, path = entry[:2], entry[3:]
            if status in ("??", "!!"):
                continue
            modified.add(path)
            if "R" in status or "C" in status:
                i += 1
        return modified

    def last_commit_time(self, path: str) -> datetime:
        cached = self._commit_times.get(path)
        if cached is not None:
            return cached

        output = self._run("log", "-1", "--format=%ad", "--date=iso", "--", path)
        if not output.strip():
            raise TimestampFormatError(f"git has no commit history for {path}")
        when = parse_git_date(output)
        self._commit_times[path] = when
        return when

    def filesystem_mtime(self, path: str) -> datetime:
        try:
            mtime = (self.root / path).stat().st_mtime
        except OSError as e:
            raise ValidationError(f"Can't find file {path}") from e
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def resolve(self, user_path: Union[str, Path]) -> str:
        absolute = Path(os.path.abspath(user_path))
        if not absolute.exists():
            raise ValidationError(f"Can't find file {user_path}")
        if not absolute.is_file():
            raise ValidationError(f"{user_path} is not a file")

        try:
            relative = absolute.resolve().relative_to(self.root)
        except ValueError:
            raise ValidationError(f"{user_path} is outside the repository {self.root}") from None

        try:
            output = self._run(
                "ls-files", "-z", "--full-name", "--error-unmatch", "--", relative.as_posix()
            )
        except VersionControlError:
            raise ValidationError(
                f"Git doesn't seem to know about {user_path}\nRun 'git add {user_path}' first"
            ) from None

        listed = [entry for entry in output.split("\0") if entry]
        return listed[0] if listed else relative.as_posix()
