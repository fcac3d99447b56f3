"""Minimal REST client for the Gemini generative-language API.

Only the calls the proxy needs are implemented: streamed chat generation
(server-sent events), one-shot image generation, and model listing.
"""

from __future__ import annotations

import json
import os
from typing import Any, Iterator

import requests

from gemchat.logging import get_logger

logger = get_logger(__file__)

DEFAULT_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_CHAT_MODEL = "gemini-2.0-flash"
IMAGE_MODEL = "gemini-2.0-flash-exp"


class ProviderError(RuntimeError):
    """Raised for any failed upstream call; ``str(exc)`` carries the provider's wording."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def api_key() -> str | None:
    for name in ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY"):
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def _gemini_url() -> str:
    raw = (os.getenv("GEMCHAT_GEMINI_URL") or "").strip().rstrip("/")
    return raw or DEFAULT_GEMINI_URL


def _timeout_seconds() -> float:
    raw = (os.getenv("GEMCHAT_GEMINI_TIMEOUT") or "").strip()
    if not raw:
        return 120.0
    try:
        return max(1.0, float(raw))
    except ValueError:
        return 120.0


def _headers() -> dict[str, str]:
    key = api_key()
    if key is None:
        raise ProviderError("GEMINI_API_KEY is not set")
    return {"x-goog-api-key": key, "Content-Type": "application/json"}


def _raise_for_status(response: requests.Response) -> None:
    if response.ok:
        return
    detail = response.reason or ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        detail = str(payload["error"].get("message") or detail)
    raise ProviderError(f"[{response.status_code} {response.reason}] {detail}".strip(), response.status_code)


def build_tools(use_grounding: bool, use_code_execution: bool) -> list[dict[str, Any]] | None:
    """Tool list for the request, or ``None`` so that no ``tools`` key is sent at all."""

    tools: list[dict[str, Any]] = []
    if use_grounding:
        tools.append({"googleSearch": {}})
    if use_code_execution:
        tools.append({"codeExecution": {}})
    return tools or None


def build_generate_body(
    contents: list[dict[str, Any]],
    *,
    system_instruction: str | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"contents": contents}
    if system_instruction:
        body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    if tools:
        body["tools"] = tools
    return body


def chunk_text(payload: dict[str, Any]) -> str:
    """Flatten one response chunk into text, rendering code-execution parts as markdown."""

    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""

    pieces: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        if part.get("text"):
            pieces.append(str(part["text"]))
        code = part.get("executableCode")
        if isinstance(code, dict):
            pieces.append(f"\n```python\n{code.get('code', '')}\n```\n")
        result = part.get("codeExecutionResult")
        if isinstance(result, dict):
            pieces.append(f"\n> Output:\n```\n{result.get('output', '')}\n```\n")
    return "".join(pieces)


def stream_generate(
    model: str,
    contents: list[dict[str, Any]],
    *,
    system_instruction: str | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> Iterator[str]:
    """Yield text chunks from ``streamGenerateContent``.

    The HTTP request is only sent once the generator is first advanced, and
    closing the generator closes the upstream connection.
    """

    url = f"{_gemini_url()}/models/{model}:streamGenerateContent"
    body = build_generate_body(contents, system_instruction=system_instruction, tools=tools)
    with requests.post(
        url,
        params={"alt": "sse"},
        json=body,
        headers=_headers(),
        stream=True,
        timeout=_timeout_seconds(),
    ) as response:
        _raise_for_status(response)
        for raw_line in response.iter_lines():
            line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
            if not line.startswith("data:"):
                continue
            try:
                payload = json.loads(line[len("data:"):].strip())
            except json.JSONDecodeError as exc:
                raise ProviderError(f"Malformed stream event: {exc}") from exc
            if not isinstance(payload, dict):
                continue
            error = payload.get("error")
            if isinstance(error, dict):
                raise ProviderError(str(error.get("message") or error), error.get("code"))
            text = chunk_text(payload)
            if text:
                yield text


def generate_image(prompt: str) -> tuple[str, str]:
    """Return ``(base64_data, mime_type)`` of the first image part."""

    url = f"{_gemini_url()}/models/{IMAGE_MODEL}:generateContent"
    body = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
    response = requests.post(url, json=body, headers=_headers(), timeout=_timeout_seconds())
    _raise_for_status(response)
    data = response.json()

    candidates = data.get("candidates") or [{}]
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and str(inline.get("mimeType", "")).startswith("image/"):
            return str(inline.get("data") or ""), str(inline["mimeType"])

    text = next((part["text"] for part in parts if isinstance(part, dict) and part.get("text")), None)
    raise ProviderError(text or "No image generated")


def list_models() -> list[dict[str, Any]]:
    url = f"{_gemini_url()}/models"
    response = requests.get(url, headers=_headers(), timeout=_timeout_seconds())
    _raise_for_status(response)
    data = response.json()
    models = data.get("models") if isinstance(data, dict) else None
    return [item for item in models or [] if isinstance(item, dict)]
