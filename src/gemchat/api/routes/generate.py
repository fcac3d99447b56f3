from __future__ import annotations

from typing import Any, Iterator

import requests
from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from gemchat.chat.errors import MALFORMED_REQUEST, ErrorOutcome, MalformedRequestError, classify
from gemchat.chat.history import split_new_turn
from gemchat.logging import get_logger
from gemchat.provider import gemini
from gemchat.provider.gemini import ProviderError


logger = get_logger(__file__)

router = APIRouter(prefix="/generate", tags=["Generate"])

UPSTREAM_ERRORS = (ProviderError, requests.RequestException, ValueError)


class HistoryItem(BaseModel):
    role: str
    parts: list[dict[str, Any]] = Field(default_factory=list)


class StreamRequest(BaseModel):
    history: list[HistoryItem] = Field(default_factory=list)
    modelName: str | None = None
    systemInstruction: str | None = None
    useGrounding: bool = False
    useCodeExecution: bool = False


class ImageRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=20_000)


class ImageResponse(BaseModel):
    image: str
    mimeType: str


def error_response(outcome: ErrorOutcome) -> JSONResponse:
    status_code = 429 if outcome.is_rate_limit else 500
    return JSONResponse(status_code=status_code, content={"error": outcome.to_dict()})


def inband_error(message: str) -> str:
    return f"\n[ERROR: {message}]"


def _relay(first: str | None, chunks: Iterator[str]) -> Iterator[str]:
    """Re-emit upstream chunks; once bytes are out, failures can only be reported in-band."""

    try:
        if first:
            yield first
        for chunk in chunks:
            yield chunk
    except UPSTREAM_ERRORS as exc:
        outcome = classify(exc)
        logger.error("Chat stream failed mid-response (%s): %s", outcome.kind, exc)
        yield inband_error(outcome.message)
    except Exception as exc:
        logger.exception("Unexpected failure while relaying chat stream")
        yield inband_error(str(exc) or type(exc).__name__)
    finally:
        chunks.close()


@router.post("/stream")
def generate_stream(payload: StreamRequest):
    try:
        context, new_turn = split_new_turn([item.model_dump() for item in payload.history])
    except MalformedRequestError as exc:
        return JSONResponse(
            status_code=400,
            content={"error": {"kind": MALFORMED_REQUEST, "message": str(exc)}},
        )

    model = payload.modelName or gemini.DEFAULT_CHAT_MODEL
    logger.info(
        "[Chat] Model: %s, Grounding: %s, Code execution: %s, Context turns: %s",
        model,
        payload.useGrounding,
        payload.useCodeExecution,
        len(context),
    )

    chunks = gemini.stream_generate(
        model,
        [*context, new_turn],
        system_instruction=payload.systemInstruction,
        tools=gemini.build_tools(payload.useGrounding, payload.useCodeExecution),
    )
    # Pull the first chunk before committing to a streamed response so that
    # failures opening the upstream call still get a JSON error body.
    try:
        first = next(chunks, None)
    except UPSTREAM_ERRORS as exc:
        chunks.close()
        outcome = classify(exc)
        logger.error("Chat error (%s): %s", outcome.kind, exc)
        return error_response(outcome)
    except Exception as exc:
        chunks.close()
        logger.exception("Unexpected failure opening chat stream")
        return error_response(classify(str(exc) or type(exc).__name__))

    return StreamingResponse(_relay(first, chunks), media_type="text/plain; charset=utf-8")


@router.post("/image", response_model=ImageResponse)
def generate_image(payload: ImageRequest):
    logger.info('[Image] Generating for: "%s"', payload.prompt)
    try:
        data, mime_type = gemini.generate_image(payload.prompt)
    except UPSTREAM_ERRORS as exc:
        outcome = classify(exc)
        logger.error("Image gen error (%s): %s", outcome.kind, exc)
        return error_response(outcome)
    return ImageResponse(image=data, mimeType=mime_type)
