# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""relies - declared reliances between files and staleness reports."""

__version__ = "0.3.0"

from .classifier import StatusCategory, classify  # noqa: E402
from .closure import ClosureEngine  # noqa: E402
from .config import Config  # noqa: E402
from .exceptions import (  # noqa: E402
    CorruptStoreError,
    CycleError,
    InternalInconsistencyError,
    MissingStoreError,
    ReliesError,
    StoreWriteError,
    TimestampFormatError,
    ValidationError,
    VersionControlError,
)
from .models import Node, RelianceGraph  # noqa: E402
from .service import RelianceService  # noqa: E402
from .staleness_resolver import NodeReport, StalenessEvaluator  # noqa: E402
from .storage import FileStore, InMemoryStore, RelianceStore  # noqa: E402
from .timestamps import TimestampResolver  # noqa: E402
from .vcs import GitClient, VersionControl  # noqa: E402

__all__ = [
    "StatusCategory",
    "classify",
    "ClosureEngine",
    "Config",
    "CorruptStoreError",
    "CycleError",
    "InternalInconsistencyError",
    "MissingStoreError",
    "ReliesError",
    "StoreWriteError",
    "TimestampFormatError",
    "ValidationError",
    "VersionControlError",
    "Node",
    "RelianceGraph",
    "RelianceService",
    "NodeReport",
    "StalenessEvaluator",
    "FileStore",
    "InMemoryStore",
    "RelianceStore",
    "TimestampResolver",
    "GitClient",
    "VersionControl",
]
