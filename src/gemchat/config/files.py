"""Small JSON documents kept in the config directory (settings, logging)."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping


def read_json_object(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Return the JSON object stored at ``path``.

    Raises ``FileNotFoundError`` when the file is absent and ``ValueError``
    when it does not hold a JSON object.
    """

    resolved = Path(path)
    with resolved.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{resolved} does not hold a JSON object")
    return data


def write_json_object(path: str | os.PathLike[str], data: Mapping[str, Any]) -> Path:
    resolved = Path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    with resolved.open("w", encoding="utf-8") as handle:
        json.dump(dict(data), handle, indent=2, sort_keys=True)
        handle.write("\n")
    return resolved
