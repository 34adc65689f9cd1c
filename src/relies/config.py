# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration for relies.

Settings are read from .relies.yml at the repository root:

    store_filename: .relies    # store file name at the repository root
    color: true                # colour output on terminals
    full_status: false         # status lists every ancestor by default
    show_descendants: false    # status lists old descendants by default
    log_level: WARNING         # console log level
    log_dir: ""                # directory for JSON log files, empty for none

A missing or unreadable file, unknown keys and invalid values never fail a
command; they are logged and the defaults apply.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from relies.exceptions import ReliesError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".relies.yml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(ReliesError):
    """An explicitly requested configuration file cannot be used."""

    pass


class Config:
    """Validated relies settings with defaults."""

    DEFAULTS: Dict[str, Any] = {
        "store_filename": ".relies",
        "color": True,
        "full_status": False,
        "show_descendants": False,
        "log_level": "WARNING",
        "log_dir": "",
    }

    def __init__(self, config_path: Optional[Path] = None, root: Optional[Path] = None):
        """Load settings.

        Args:
            config_path: Settings file. Default: .relies.yml under root.
            root: Repository root. Default: the current directory.
        """
        if config_path is None:
            config_path = (root if root is not None else Path.cwd()) / CONFIG_FILENAME
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = dict(self.DEFAULTS)

        loaded = self._read()
        if loaded:
            self._merge(loaded)

    def _read(self) -> Optional[Dict[str, Any]]:
        """Raw mapping from the settings file, or None when it can't be used."""
        if not self.config_path.exists():
            logger.debug(f"No settings file at {self.config_path}, using defaults")
            return None

        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(f"Ignoring {self.config_path}, invalid YAML: {e}")
            return None
        except OSError as e:
            logger.warning(f"Ignoring {self.config_path}, cannot read it: {e}")
            return None

        if data is None:
            logger.debug(f"{self.config_path} is empty, using defaults")
            return None
        if not isinstance(data, dict):
            logger.warning(
                f"Ignoring {self.config_path}, expected a mapping at the top level "
                f"but found {type(data).__name__}"
            )
            return None
        return data

    def _merge(self, loaded: Dict[str, Any]) -> None:
        for key, value in loaded.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Ignoring unknown setting '{key}' in {self.config_path}")
            elif not self._is_valid(key, value):
                logger.warning(
                    f"Ignoring invalid value {value!r} for '{key}', "
                    f"keeping {self.DEFAULTS[key]!r}"
                )
            else:
                self._config[key] = value.upper() if key == "log_level" else value

    def _is_valid(self, key: str, value: Any) -> bool:
        # Exact type match: 1 is not a valid bool setting
        if type(value) is not type(self.DEFAULTS[key]):
            return False
        if key == "store_filename":
            # A plain file name at the repository root
            return value not in ("", ".", "..") and "/" not in value and "\\" not in value
        if key == "log_level":
            return value.upper() in _LOG_LEVELS
        return True

    @property
    def store_filename(self) -> str:
        return str(self._config["store_filename"])

    @property
    def color(self) -> bool:
        return bool(self._config["color"])

    @property
    def full_status(self) -> bool:
        return bool(self._config["full_status"])

    @property
    def show_descendants(self) -> bool:
        return bool(self._config["show_descendants"])

    @property
    def log_level(self) -> int:
        """Console level as a logging constant."""
        return int(getattr(logging, self._config["log_level"]))

    @property
    def log_dir(self) -> Optional[Path]:
        """JSON log directory; relative values are taken from the settings file's directory."""
        value = self._config["log_dir"]
        if not value:
            return None
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.config_path.parent / path
