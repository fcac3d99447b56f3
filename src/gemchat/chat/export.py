"""Transcript export as JSON or markdown."""

from __future__ import annotations

import json
from typing import Iterable, Literal

from .models import Message

ExportFormat = Literal["json", "markdown"]


def to_markdown(messages: Iterable[Message]) -> str:
    blocks = []
    for message in messages:
        role = "User" if message.is_user else "AI"
        blocks.append(f"**{role}**: {message.text}\n\n")
    return "---\n\n".join(blocks)


def to_json(messages: Iterable[Message]) -> str:
    return json.dumps([message.to_dict() for message in messages], indent=2, ensure_ascii=False)


def export_messages(messages: Iterable[Message], fmt: ExportFormat = "json") -> str:
    if fmt == "markdown":
        return to_markdown(messages)
    if fmt == "json":
        return to_json(messages)
    raise ValueError(f"Unknown export format: {fmt!r}")


def export_filename(fmt: ExportFormat) -> str:
    return "chat_history.md" if fmt == "markdown" else "chat_history.json"
