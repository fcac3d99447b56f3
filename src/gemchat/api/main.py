from __future__ import annotations

# src/gemchat/api/main.py
import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gemchat.api.routes import router
from gemchat.api.security import is_truthy, require_api_key
from gemchat.logging import get_logger
from gemchat.provider.gemini import api_key


logger = get_logger(__file__)


def _parse_csv_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


_DEFAULT_CORS_ORIGINS = [
    "http://127.0.0.1:3000",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]


def create_app() -> FastAPI:
    cors_origins = _parse_csv_list(os.getenv("GEMCHAT_CORS_ORIGINS")) or _DEFAULT_CORS_ORIGINS
    cors_allow_credentials = is_truthy(os.getenv("GEMCHAT_CORS_ALLOW_CREDENTIALS"))
    legacy_prefix = is_truthy(os.getenv("GEMCHAT_API_LEGACY_PREFIX", "1"))

    if api_key() is None:
        logger.error("GEMINI_API_KEY is not set; upstream calls will fail")

    app = FastAPI(title="gemchat proxy")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/status")
    def status():
        return {"ok": True}

    app.include_router(router, dependencies=[Depends(require_api_key)])
    # The browser client calls everything under /api.
    if legacy_prefix:
        app.include_router(router, prefix="/api", dependencies=[Depends(require_api_key)])
    return app


app = create_app()
