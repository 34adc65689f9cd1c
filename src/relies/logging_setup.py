# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Logging for relies invocations.

Console records go to stderr so they never mix with reports on stdout. When
a log directory is configured, records are also appended as JSON lines to
relies_YYYYMMDD.log in that directory.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

CONSOLE_FORMAT = "%(levelname)s: %(name)s: %(message)s"

# Handlers owned by the last setup_logging() call
_installed_handlers: List[logging.Handler] = []


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Fields: timestamp (UTC, "Z" suffix), level, logger, message, plus
    "exception" when exc_info is set and any mapping passed as
    extra={"extra_fields": {...}}.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_now().isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry)


def _file_handler(log_dir: Path, log_level: int) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"relies_{_utc_now():%Y%m%d}.log"
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(log_level)
    handler.setFormatter(StructuredFormatter())
    return handler


def _console_handler(log_level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.WARNING,
    console_output: bool = True,
) -> None:
    """Configure the root logger for one invocation.

    Safe to call more than once: handlers from an earlier call are closed
    and replaced.

    Args:
        log_dir: Directory for JSON log files. If None, no file is written.
        log_level: Level for the root logger and every handler.
        console_output: Whether to log to stderr.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    while _installed_handlers:
        _installed_handlers.pop().close()

    if log_dir is not None:
        _installed_handlers.append(_file_handler(log_dir, log_level))
    if console_output:
        _installed_handlers.append(_console_handler(log_level))
    for handler in _installed_handlers:
        root_logger.addHandler(handler)

    if log_dir is not None:
        logging.getLogger(__name__).debug(f"Writing JSON logs to {log_dir}")
