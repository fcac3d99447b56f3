"""Filesystem locations shared by gemchat configuration files."""

from __future__ import annotations

import os
from pathlib import Path


def default_config_dir() -> Path:
    """Return the default config directory, honoring ``GEMCHAT_CONFIG_DIR``."""

    raw = os.environ.get("GEMCHAT_CONFIG_DIR")
    if raw and raw.strip():
        return Path(raw).expanduser()
    return Path.home() / ".gemchat"


def path_from_env(env_name: str, filename: str) -> Path:
    """Return ``$env_name`` when set, else ``filename`` inside the config dir."""

    raw = os.environ.get(env_name)
    if raw and raw.strip():
        return Path(raw).expanduser()
    return default_config_dir() / filename
