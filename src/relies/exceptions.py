# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Error taxonomy for relies.

Every error raised on purpose by the package derives from ReliesError so the
command line can turn it into a prefixed message and a non-zero exit code.
"""

from typing import Optional


class ReliesError(Exception):
    """Base class for all relies errors."""

    pass


class ValidationError(ReliesError):
    """A user-supplied file is missing, not a regular file, or not tracked."""

    pass


class VersionControlError(ValidationError):
    """The version-control tool failed or is unavailable."""

    pass


class CycleError(ReliesError):
    """Adding a reliance would make a file its own ancestor."""

    def __init__(self, child: str, parent: str):
        self.child = child
        self.parent = parent
        super().__init__(f"{child} can't rely on {parent} as this will create a loop")


class CorruptStoreError(ReliesError):
    """The relations store could not be parsed."""

    def __init__(self, path: str, reason: str, line_number: Optional[int] = None):
        self.path = path
        self.reason = reason
        self.line_number = line_number
        location = f"{path}:{line_number}" if line_number is not None else path
        super().__init__(f"Corrupt store {location}: {reason}")


class MissingStoreError(ReliesError):
    """No relations store exists yet for this repository."""

    def __init__(self, path: str, filename: str = ".relies"):
        self.path = path
        super().__init__(f"No {filename} store for this repository - run 'relies init'")


class TimestampFormatError(ReliesError):
    """A trustworthy modification time could not be determined."""

    pass


class InternalInconsistencyError(ReliesError):
    """A state combination that correct code never produces."""

    pass


class StoreWriteError(ReliesError):
    """The store file could not be written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to write store {path}: {reason}")
