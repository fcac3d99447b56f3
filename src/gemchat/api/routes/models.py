from __future__ import annotations

import requests
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from gemchat.chat.errors import classify
from gemchat.logging import get_logger
from gemchat.provider import gemini
from gemchat.provider.gemini import ProviderError


logger = get_logger(__file__)

router = APIRouter(tags=["Models"])


@router.get("/models")
def list_models():
    try:
        return gemini.list_models()
    except (ProviderError, requests.RequestException, ValueError) as exc:
        logger.error("Error listing models: %s", exc)
        return JSONResponse(status_code=500, content={"error": classify(exc).to_dict()})
