"""Session and message structures persisted by the chat client.

The JSON shape mirrors what the browser client stored (camelCase keys and
millisecond timestamps) so existing histories load unchanged.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

DEFAULT_TITLE = "New Chat"
LEGACY_TITLE = "Previous Chat"
TITLE_MAX_CHARS = 30
WELCOME_ID = "welcome"
WELCOME_TEXT = "Hello! I'm your AI assistant. I'm connected to Google Gemini. How can I help you?"

_id_lock = threading.Lock()
_last_id = 0


def now_ms() -> int:
    return int(time.time() * 1000)


def next_message_id() -> str:
    """Return a millisecond-based id, bumped so ids from this process never repeat."""

    global _last_id
    with _id_lock:
        candidate = max(now_ms(), _last_id + 1)
        _last_id = candidate
        return str(candidate)


@dataclass
class Attachment:
    mime_type: str
    data: str | None = None
    preview: str | None = None

    def inline_data(self) -> str | None:
        """Return the base64 payload, unpacking a ``data:`` URL preview if needed."""

        if self.data:
            return self.data
        if self.preview and self.preview.startswith("data:") and "," in self.preview:
            return self.preview.split(",", 1)[1]
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"mimeType": self.mime_type}
        if self.data is not None:
            out["data"] = self.data
        if self.preview is not None:
            out["preview"] = self.preview
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Attachment":
        return cls(
            mime_type=str(data.get("mimeType") or "application/octet-stream"),
            data=data.get("data"),
            preview=data.get("preview"),
        )


@dataclass
class Message:
    """A single chat message; assistant text only ever grows while streaming."""

    id: str
    text: str
    is_user: bool
    attachment: Attachment | None = None
    is_error: bool = False
    timestamp: int | None = None

    @classmethod
    def user(cls, text: str, attachment: Attachment | None = None) -> "Message":
        return cls(id=next_message_id(), text=text, is_user=True, attachment=attachment, timestamp=now_ms())

    @classmethod
    def assistant(cls, text: str = "") -> "Message":
        return cls(id=next_message_id(), text=text, is_user=False, timestamp=now_ms())

    @classmethod
    def welcome(cls) -> "Message":
        return cls(id=WELCOME_ID, text=WELCOME_TEXT, is_user=False, timestamp=now_ms())

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "text": self.text, "isUser": self.is_user}
        if self.attachment is not None:
            out["attachment"] = self.attachment.to_dict()
        if self.is_error:
            out["isError"] = True
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        attachment = data.get("attachment")
        timestamp = data.get("timestamp")
        return cls(
            id=str(data.get("id", "")),
            text=str(data.get("text") or ""),
            is_user=bool(data.get("isUser", False)),
            attachment=Attachment.from_dict(attachment) if isinstance(attachment, dict) else None,
            is_error=bool(data.get("isError", False)),
            timestamp=timestamp if isinstance(timestamp, int) else None,
        )


def derive_title(messages: Iterable[Message]) -> str | None:
    """Title taken from the first user message, or ``None`` if there is none."""

    for message in messages:
        if message.is_user:
            text = message.text
            if len(text) > TITLE_MAX_CHARS:
                return text[:TITLE_MAX_CHARS] + "..."
            return text
    return None


@dataclass
class Session:
    id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def replace_messages(self, messages: Iterable[Message]) -> None:
        """Swap in a new transcript, bump ``updated_at`` and fill in a default title."""

        self.messages = list(messages)
        if self.title == DEFAULT_TITLE:
            title = derive_title(self.messages)
            if title is not None:
                self.title = title
        self.updated_at = max(now_ms(), self.updated_at + 1)

    def append(self, message: Message) -> None:
        self.replace_messages([*self.messages, message])

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def last_user_index(self) -> int:
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].is_user:
                return index
        return -1

    def is_blank(self) -> bool:
        """True when the transcript holds nothing beyond the welcome message."""

        if len(self.messages) > 1:
            return False
        return not self.messages or self.messages[0].id == WELCOME_ID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [message.to_dict() for message in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        created = data.get("createdAt")
        updated = data.get("updatedAt")
        created_at = created if isinstance(created, int) else now_ms()
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or DEFAULT_TITLE),
            messages=[Message.from_dict(item) for item in data.get("messages") or [] if isinstance(item, dict)],
            created_at=created_at,
            updated_at=updated if isinstance(updated, int) else created_at,
        )
