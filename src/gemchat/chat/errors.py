"""Failure classification for generation calls.

Upstream error wording is the only signal available, so classification is a
pure function of the error text.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Literal

ErrorKind = Literal["RATE_LIMIT", "GENERAL"]

RATE_LIMIT: ErrorKind = "RATE_LIMIT"
GENERAL: ErrorKind = "GENERAL"
MALFORMED_REQUEST = "MALFORMED_REQUEST"

_RETRY_RE = re.compile(r"retry in ([0-9]+(?:\.[0-9]+)?)s")


class MalformedRequestError(ValueError):
    """Raised before any network call when a request cannot be composed."""

    kind = MALFORMED_REQUEST


@dataclass(frozen=True)
class ErrorOutcome:
    kind: ErrorKind
    message: str
    wait_seconds: int | None = None

    @property
    def is_rate_limit(self) -> bool:
        return self.kind == RATE_LIMIT

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.wait_seconds is not None:
            out["waitSeconds"] = self.wait_seconds
        return out


def _error_text(raw: BaseException | str | Any) -> str:
    if isinstance(raw, str):
        return raw
    text = str(raw)
    return text or type(raw).__name__


def classify(raw: BaseException | str | Any) -> ErrorOutcome:
    """Map a raw failure (exception or message text) onto an :class:`ErrorOutcome`."""

    text = _error_text(raw)
    lowered = text.lower()
    if "429" in text or "quota" in lowered or "limit" in lowered:
        wait_seconds = None
        match = _RETRY_RE.search(text)
        if match:
            wait_seconds = math.ceil(float(match.group(1)))
        return ErrorOutcome(RATE_LIMIT, text, wait_seconds)
    return ErrorOutcome(GENERAL, text)


def outcome_from_payload(payload: Any) -> ErrorOutcome | None:
    """Rebuild an outcome from a proxy ``{"error": {...}}`` body.

    Bodies without a usable ``error`` entry return ``None``; a bare string
    error is classified from its text.
    """

    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, str):
        return classify(error)
    if not isinstance(error, dict):
        return None

    message = str(error.get("message") or "")
    kind = str(error.get("kind") or error.get("type") or "").upper()
    if not kind:
        return classify(message) if message else None
    if kind != RATE_LIMIT:
        return ErrorOutcome(GENERAL, message or "Unknown error")

    wait = error.get("waitSeconds")
    wait_seconds = int(wait) if isinstance(wait, (int, float)) and not isinstance(wait, bool) else None
    return ErrorOutcome(RATE_LIMIT, message or "Rate limit exceeded.", wait_seconds)


def render_outcome(outcome: ErrorOutcome) -> str:
    """Human-readable replacement text for a failed assistant message."""

    text = f"Error: {outcome.message}"
    if outcome.is_rate_limit and outcome.wait_seconds is not None:
        text += f" Please wait {outcome.wait_seconds} seconds before regenerating."
    return text


__all__ = [
    "ErrorOutcome",
    "GENERAL",
    "MALFORMED_REQUEST",
    "MalformedRequestError",
    "RATE_LIMIT",
    "classify",
    "outcome_from_payload",
    "render_outcome",
]
