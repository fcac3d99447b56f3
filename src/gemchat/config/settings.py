"""User generation settings for the chat client.

Settings live in a small JSON file (``~/.gemchat/settings.json`` unless
``GEMCHAT_SETTINGS_PATH`` points elsewhere). They are read once per call and
handed to the orchestrator as a :class:`GenerationSettings` value, so the
orchestrator itself never touches storage.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

from gemchat.config.files import read_json_object, write_json_object
from gemchat.config.paths import path_from_env
from gemchat.logging import get_logger

logger = get_logger(__file__)

DEFAULT_MODEL = "gemini-2.0-flash"
RETIRED_MODELS = frozenset({"gemini-1.5-flash"})
DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful AI assistant."
CAPABILITIES_NOTE = (
    "CAPABILITIES:\n"
    "- You can search the web using tools if available.\n"
    "- You can generate charts. To render a chart, output a code block with language "
    "'chart' containing JSON with this schema: { type: 'bar'|'line'|'pie', "
    "data: [{name: string, value: number}, ...], xKey: 'name', dataKey: 'value' }."
)


@dataclass(frozen=True)
class GenerationSettings:
    """Model and tool preferences applied to one generation call."""

    model_name: str = DEFAULT_MODEL
    system_instruction: str | None = None
    use_grounding: bool = False
    use_code_execution: bool = False
    auto_speak: bool = False

    def effective_system_instruction(self) -> str:
        base = (self.system_instruction or "").strip() or DEFAULT_SYSTEM_INSTRUCTION
        return f"{base}\n\n{CAPABILITIES_NOTE}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "modelName": data["model_name"],
            "systemInstruction": data["system_instruction"],
            "useGrounding": data["use_grounding"],
            "useCodeExecution": data["use_code_execution"],
            "autoSpeak": data["auto_speak"],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationSettings":
        model = str(data.get("modelName") or "").strip()
        if not model or model in RETIRED_MODELS:
            model = DEFAULT_MODEL
        instruction = data.get("systemInstruction")
        return cls(
            model_name=model,
            system_instruction=str(instruction) if instruction else None,
            use_grounding=data.get("useGrounding") is True,
            use_code_execution=data.get("useCodeExecution") is True,
            auto_speak=data.get("autoSpeak") is True,
        )


def _resolve_settings_path(path: str | os.PathLike[str] | None = None) -> Path:
    if path is not None:
        return Path(path)
    return path_from_env("GEMCHAT_SETTINGS_PATH", "settings.json")


def load_settings(path: str | os.PathLike[str] | None = None) -> GenerationSettings:
    """Load settings, falling back to defaults for a missing or corrupt file."""

    resolved = _resolve_settings_path(path)
    try:
        data = read_json_object(resolved)
    except FileNotFoundError:
        return GenerationSettings()
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", resolved, exc)
        return GenerationSettings()
    return GenerationSettings.from_dict(data)


def save_settings(
    settings: GenerationSettings,
    path: str | os.PathLike[str] | None = None,
) -> Path:
    return write_json_object(_resolve_settings_path(path), settings.to_dict())


def update_settings(path: str | os.PathLike[str] | None = None, **changes: Any) -> GenerationSettings:
    """Apply keyword changes to the persisted settings and save them."""

    settings = replace(load_settings(path), **changes)
    save_settings(settings, path)
    return settings


__all__ = [
    "DEFAULT_MODEL",
    "GenerationSettings",
    "load_settings",
    "save_settings",
    "update_settings",
]
