"""Persisted logging level.

``gemchat logging set-level`` writes the chosen level to ``logging.json`` in
the config directory (or ``GEMCHAT_LOG_CONFIG``); every process started
afterwards configures its loggers from it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from gemchat.config.files import read_json_object, write_json_object
from gemchat.config.paths import path_from_env

LEVEL_KEY = "log_level"

ConfigFile = Optional[os.PathLike[str] | str]


def config_path(config_file: ConfigFile = None) -> Path:
    if config_file is not None:
        return Path(config_file)
    return path_from_env("GEMCHAT_LOG_CONFIG", "logging.json")


def load_config(config_file: ConfigFile = None) -> dict[str, Any]:
    """Return the stored logging config; an absent or unreadable file reads as ``{}``."""

    try:
        return read_json_object(config_path(config_file))
    except (OSError, ValueError):
        return {}


def save_config(config: dict[str, Any], config_file: ConfigFile = None) -> Path:
    return write_json_object(config_path(config_file), config)


def level_value(level: str | int | None) -> Optional[int]:
    """Numeric value of a level given by name or number, ``None`` if unknown."""

    if level is None:
        return None
    if isinstance(level, int):
        return level
    candidate = logging.getLevelName(str(level).strip().upper())
    return candidate if isinstance(candidate, int) else None


def load_log_level(config_file: ConfigFile = None) -> Optional[int]:
    return level_value(load_config(config_file).get(LEVEL_KEY))


def save_log_level(level: str | int, config_file: ConfigFile = None) -> Path:
    """Persist ``level`` by name and return the config path.

    Raises
    ------
    ValueError
        If ``level`` is not a known logging level.
    """

    value = level_value(level)
    if value is None:
        raise ValueError(f"Unknown logging level: {level!r}")
    config = load_config(config_file)
    config[LEVEL_KEY] = logging.getLevelName(value)
    return save_config(config, config_file)


__all__ = [
    "config_path",
    "level_value",
    "load_config",
    "load_log_level",
    "save_config",
    "save_log_level",
]
