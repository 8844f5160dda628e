"""User settings for the `usm` command.

Settings come from three layers, later layers winning:

1. An optional YAML file: ``$USM_CONFIG`` or ``usm.yaml`` in the working
   directory.
2. Environment variables (``USM_CONTENT_MODE``, ``LOG_LEVEL``). The CLI loads
   a ``.env`` file into the environment first.
3. Explicit command-line flags, applied by the caller with ``with_overrides``.

Example usm.yaml:
    content_mode: placeholder
    log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from storymatrix.config import DEFAULT_CONTENT_MODE, ContentMode

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "USM_CONFIG"
DEFAULT_CONFIG_FILE = "usm.yaml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one invocation."""

    content_mode: ContentMode = DEFAULT_CONTENT_MODE
    log_level: str = "WARNING"
    config_file: str | None = None

    @property
    def debug(self) -> bool:
        return self.log_level == "DEBUG"

    @classmethod
    def load(cls, config_file: str | Path | None = None) -> "Settings":
        """Resolve settings from the YAML file and the environment.

        Args:
            config_file: Explicit YAML path. Defaults to ``$USM_CONFIG`` or
                ``usm.yaml`` in the working directory when present.
        """
        path = _resolve_config_file(config_file)
        data = _read_yaml(path) if path else {}

        content_mode = _parse_content_mode(
            os.getenv("USM_CONTENT_MODE") or data.get("content_mode"),
        )
        log_level = _parse_log_level(os.getenv("LOG_LEVEL") or data.get("log_level"))

        return cls(
            content_mode=content_mode,
            log_level=log_level,
            config_file=str(path) if path else None,
        )

    def with_overrides(
        self,
        content_mode: str | None = None,
        debug: bool = False,
    ) -> "Settings":
        """Apply command-line flags on top of the loaded settings."""
        updated = self
        if content_mode:
            updated = replace(updated, content_mode=_parse_content_mode(content_mode))
        if debug:
            updated = replace(updated, log_level="DEBUG")
        return updated


def _resolve_config_file(config_file: str | Path | None) -> Path | None:
    if config_file:
        return Path(config_file)
    from_env = os.getenv(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.exists() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a settings file, treating an unusable file as empty."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Settings file {path} not found, using defaults")
        return {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read settings file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Settings file {path} must contain a mapping, ignoring it")
        return {}
    return data


def _parse_content_mode(value: Any) -> ContentMode:
    if value is None:
        return DEFAULT_CONTENT_MODE
    try:
        return ContentMode(str(value).strip().lower())
    except ValueError:
        logger.warning(
            f"Unknown content mode '{value}', using '{DEFAULT_CONTENT_MODE.value}'. "
            f"Valid modes: {ContentMode.values()}"
        )
        return DEFAULT_CONTENT_MODE


def _parse_log_level(value: Any) -> str:
    if value is None:
        return "WARNING"
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        logger.warning(f"Unknown log level '{value}', using WARNING")
        return "WARNING"
    return level
