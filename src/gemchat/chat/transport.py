"""HTTP transport between the chat client and the gemchat proxy.

The proxy reports failures in two shapes: a JSON ``{"error": {...}}`` body
when the request fails before any text was produced, or a trailing
``\\n[ERROR: ...]`` marker appended to an already-open text stream. Both are
folded into :class:`StreamFailed` here so callers handle one failure path.
"""

from __future__ import annotations

import codecs
import os
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Union

import requests

from gemchat.logging import get_logger

from .errors import ErrorOutcome, classify, outcome_from_payload
from .history import GenerationRequest

logger = get_logger(__file__)

DEFAULT_BASE_URL = "http://localhost:8000"
INBAND_ERROR_RE = re.compile(r"\n\[ERROR: (?P<message>.*)\]\s*\Z", re.DOTALL)


def default_base_url() -> str:
    raw = (os.getenv("GEMCHAT_API_BASE_URL") or "").strip().rstrip("/")
    return raw or DEFAULT_BASE_URL


def _timeout_seconds() -> float:
    raw = (os.getenv("GEMCHAT_API_TIMEOUT") or "").strip()
    if not raw:
        return 120.0
    try:
        return max(1.0, float(raw))
    except ValueError:
        return 120.0


class CancellationToken:
    """Cooperative abort signal for one generation attempt.

    Cancelling also closes the bound HTTP response so a blocked read returns
    promptly and the connection is released.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._response: requests.Response | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            response, self._response = self._response, None
        if response is not None:
            response.close()

    def bind(self, response: requests.Response) -> None:
        with self._lock:
            if not self._event.is_set():
                self._response = response
                return
        response.close()

    def release(self) -> None:
        with self._lock:
            self._response = None


@dataclass(frozen=True)
class StreamCompleted:
    text: str


@dataclass(frozen=True)
class StreamCancelled:
    text: str


@dataclass(frozen=True)
class StreamFailed:
    outcome: ErrorOutcome


StreamResult = Union[StreamCompleted, StreamCancelled, StreamFailed]


@dataclass(frozen=True)
class ImageResult:
    data: str
    mime_type: str = "image/png"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def _error_from_response(response: requests.Response) -> ErrorOutcome:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    outcome = outcome_from_payload(payload)
    if outcome is not None:
        return outcome
    return classify(f"Server Error: {response.status_code}")


class StreamTransport:
    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        self.base_url = (base_url or default_base_url()).rstrip("/")
        self.timeout = timeout if timeout is not None else _timeout_seconds()

    def stream(
        self,
        request: GenerationRequest,
        on_chunk: Callable[[str], None],
        token: CancellationToken,
    ) -> StreamResult:
        """Run one streaming call, passing decoded text to ``on_chunk`` in arrival order.

        Never raises for network or provider failures; those come back as
        :class:`StreamFailed`. A cancelled token yields :class:`StreamCancelled`
        with the text received so far.
        """

        url = f"{self.base_url}/generate/stream"
        if token.cancelled:
            return StreamCancelled("")

        try:
            response = requests.post(url, json=request.to_payload(), stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            if token.cancelled:
                return StreamCancelled("")
            logger.warning("Chat stream request failed (%s): %s", url, exc)
            return StreamFailed(classify(exc))

        token.bind(response)
        pieces: list[str] = []
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            if token.cancelled:
                return StreamCancelled("")
            if not response.ok:
                outcome = _error_from_response(response)
                logger.warning("Chat stream rejected with HTTP %s: %s", response.status_code, outcome.message)
                return StreamFailed(outcome)

            for raw in response.iter_content(chunk_size=None):
                if token.cancelled:
                    break
                text = decoder.decode(raw)
                if text:
                    pieces.append(text)
                    on_chunk(text)
            if not token.cancelled:
                tail = decoder.decode(b"", final=True)
                if tail:
                    pieces.append(tail)
                    on_chunk(tail)
        except Exception as exc:
            # Closing the response from another thread surfaces as a read error.
            if token.cancelled:
                return StreamCancelled("".join(pieces))
            logger.warning("Chat stream broke after %s chunk(s): %s", len(pieces), exc)
            return StreamFailed(classify(exc))
        finally:
            token.release()
            response.close()

        text = "".join(pieces)
        if token.cancelled:
            return StreamCancelled(text)

        marker = INBAND_ERROR_RE.search(text)
        if marker:
            logger.warning("Chat stream ended with an in-band error marker")
            return StreamFailed(classify(marker.group("message")))
        return StreamCompleted(text)

    def generate_image(self, prompt: str) -> ImageResult | ErrorOutcome:
        url = f"{self.base_url}/generate/image"
        try:
            response = requests.post(url, json={"prompt": prompt}, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Image generation request failed (%s): %s", url, exc)
            return classify(exc)

        if not response.ok:
            return _error_from_response(response)
        try:
            data: Any = response.json()
        except ValueError as exc:
            return classify(f"Image API returned invalid JSON: {exc}")
        if not isinstance(data, dict) or not data.get("image"):
            return classify("No image generated")
        return ImageResult(data=str(data["image"]), mime_type=str(data.get("mimeType") or "image/png"))

    def list_models(self) -> list[dict[str, Any]]:
        """Return the proxy's model descriptors, or an empty list on any failure."""

        url = f"{self.base_url}/models"
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to list models: %s", exc)
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]


__all__ = [
    "CancellationToken",
    "ImageResult",
    "StreamCancelled",
    "StreamCompleted",
    "StreamFailed",
    "StreamResult",
    "StreamTransport",
]
