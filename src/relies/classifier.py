# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Status categories used by renderers to decide how a file is shown."""

from relies.exceptions import InternalInconsistencyError


class StatusCategory:
    """Status of a file in a report.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    SAFE_CLEAN = "safe_clean"  # Safe, no local changes
    SAFE_MODIFIED = "safe_modified"  # Safe, local changes
    STALE = "stale"  # Relies on something newer than itself
    MODIFIED = "modified"  # Local changes, no reliance problems
    CLEAN = "clean"  # No local changes, no reliance problems

    ALL = (SAFE_CLEAN, SAFE_MODIFIED, STALE, MODIFIED, CLEAN)


def classify(safe: bool, modified: bool, has_young_ancestors: bool) -> str:
    """Map a file's state to exactly one StatusCategory.

    Conditions are evaluated in order; the first match wins.

    Raises:
        InternalInconsistencyError: If no condition matches.
    """
    if safe and not modified:
        return StatusCategory.SAFE_CLEAN
    elif safe and modified:
        return StatusCategory.SAFE_MODIFIED
    elif has_young_ancestors:
        return StatusCategory.STALE
    elif not has_young_ancestors and modified:
        return StatusCategory.MODIFIED
    elif not has_young_ancestors and not modified:
        return StatusCategory.CLEAN
    raise InternalInconsistencyError(
        f"No status category for safe={safe}, modified={modified}, "
        f"has_young_ancestors={has_young_ancestors}"
    )
