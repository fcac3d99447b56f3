"""Conversion of local transcripts into provider ``contents``.

Both the client and the proxy apply the same normalization: the trailing entry
is the turn being answered and must come from the user, and the remaining
context may not start with a model turn.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from gemchat.config.settings import GenerationSettings

from .errors import MalformedRequestError
from .models import Message

USER_ROLE = "user"
MODEL_ROLE = "model"

Content = dict[str, Any]


def to_content(message: Message) -> Content:
    parts: list[dict[str, Any]] = []
    if message.text:
        parts.append({"text": message.text})
    if message.attachment is not None:
        data = message.attachment.inline_data()
        if data:
            parts.append({"inlineData": {"mimeType": message.attachment.mime_type, "data": data}})
    if not parts:
        parts.append({"text": " "})
    return {"role": USER_ROLE if message.is_user else MODEL_ROLE, "parts": parts}


def trim_leading_non_user(contents: Sequence[Content]) -> list[Content]:
    """Drop entries until the first user turn (provider requirement)."""

    start = 0
    while start < len(contents) and contents[start].get("role") != USER_ROLE:
        start += 1
    return list(contents[start:])


def split_new_turn(contents: Sequence[Content]) -> tuple[list[Content], Content]:
    """Return ``(context, new_turn)``; the trailing entry must be a user turn."""

    if not contents:
        raise MalformedRequestError("History is empty; nothing to answer")
    *context, new_turn = contents
    if new_turn.get("role") != USER_ROLE:
        raise MalformedRequestError("Last message must be from user")
    return trim_leading_non_user(context), new_turn


@dataclass(frozen=True)
class GenerationRequest:
    context: list[Content]
    new_turn: Content
    model_name: str
    system_instruction: str
    use_grounding: bool = False
    use_code_execution: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Body for ``POST /generate/stream``; the proxy pops the trailing turn again."""

        return {
            "history": [*self.context, self.new_turn],
            "modelName": self.model_name,
            "systemInstruction": self.system_instruction,
            "useGrounding": self.use_grounding,
            "useCodeExecution": self.use_code_execution,
        }


def build_request(history: Sequence[Message], settings: GenerationSettings) -> GenerationRequest:
    """Compose a request from a transcript ending in the user turn being answered.

    Raises
    ------
    MalformedRequestError
        If ``history`` is empty or its last entry is not user-authored.
    """

    context, new_turn = split_new_turn([to_content(message) for message in history])
    return GenerationRequest(
        context=context,
        new_turn=new_turn,
        model_name=settings.model_name,
        system_instruction=settings.effective_system_instruction(),
        use_grounding=settings.use_grounding,
        use_code_execution=settings.use_code_execution,
    )
