"""Loading of ``KEY=value`` env files for CLI commands.

The proxy reads ``GEMINI_API_KEY`` and friends from the environment. Rather
than requiring an exported shell, ``gemchat --env-file .env ...`` (or a
``.env`` in the working directory for ``gemchat api start``) fills in
``os.environ`` before any command runs.

Relative ``GEMCHAT_*_PATH`` / ``GEMCHAT_*_DIR`` values are resolved against
the directory of the env file that sets them, so an env file keeps working
when the CLI is started from elsewhere.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

ENV_FILE_FLAG = "--env-file"

_ASSIGNMENT_RE = re.compile(r"^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_.]*)\s*=\s*(?P<value>.*)$")
_INLINE_COMMENT_RE = re.compile(r"(?:^|\s+)#.*$")
_PATH_KEY_RE = re.compile(r"^GEMCHAT_\w+_(?:PATH|DIR)$")


def extract_env_files(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split ``--env-file PATH`` / ``--env-file=PATH`` out of ``argv``.

    The flag may appear anywhere, including after subcommands, so it is
    removed before argparse sees the command line.
    """

    env_files: list[str] = []
    remaining: list[str] = []
    tokens = iter(argv)
    for token in tokens:
        if token == ENV_FILE_FLAG:
            value = next(tokens, None)
            if value is None:
                raise SystemExit(f"{ENV_FILE_FLAG} requires a file path")
            env_files.append(value)
        elif token.startswith(ENV_FILE_FLAG + "="):
            env_files.append(token.partition("=")[2])
        else:
            remaining.append(token)
    return env_files, remaining


def _parse_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return _INLINE_COMMENT_RE.sub("", value).rstrip()


def parse_env_file_text(text: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _ASSIGNMENT_RE.match(line)
        if match is None:
            continue
        parsed[match.group("key")] = _parse_value(match.group("value"))
    return parsed


def _resolve_path_value(value: str, base_dir: Path) -> str:
    if not value or value.startswith("sqlite"):
        return value
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return str(path.resolve())


def load_env_file(path: str | Path, *, override: bool = True, required: bool = True) -> dict[str, str]:
    """Load env vars from ``path`` into ``os.environ`` and return what was parsed.

    A missing file exits the CLI when ``required``; otherwise it is skipped.
    With ``override=False`` variables already set in the environment win.
    """

    resolved = Path(path).expanduser()
    if not resolved.is_file():
        if required:
            raise SystemExit(f"{ENV_FILE_FLAG} does not exist: {resolved}")
        return {}

    parsed = parse_env_file_text(resolved.read_text(encoding="utf-8"))
    base_dir = resolved.resolve().parent
    for key, value in parsed.items():
        if _PATH_KEY_RE.match(key):
            parsed[key] = value = _resolve_path_value(value, base_dir)
        if override or key not in os.environ:
            os.environ[key] = value
    return parsed


def load_env_files(paths: Iterable[str | Path], *, override: bool = True) -> dict[str, str]:
    """Load several env files in order; later files override earlier ones."""

    merged: dict[str, str] = {}
    for path in paths:
        merged.update(load_env_file(path, override=override))
    return merged
