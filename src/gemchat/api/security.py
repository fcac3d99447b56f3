"""Optional API-key guard for the proxy.

When ``GEMCHAT_API_KEY`` is set, every proxied route requires it via the
``X-API-Key`` header or ``Authorization: Bearer <key>``. Setting
``GEMCHAT_API_REQUIRE_KEY=1`` without a key refuses all requests instead of
silently running open.
"""

from __future__ import annotations

import os
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

_API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
_BEARER = HTTPBearer(auto_error=False)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _expected_api_key() -> str | None:
    key = (os.getenv("GEMCHAT_API_KEY") or "").strip()
    return key or None


def _provided_api_key(
    x_api_key: str | None = Depends(_API_KEY_HEADER),
    bearer: HTTPAuthorizationCredentials | None = Depends(_BEARER),
) -> str | None:
    if x_api_key:
        return x_api_key
    if bearer and bearer.credentials:
        return bearer.credentials
    return None


def require_api_key(provided: str | None = Depends(_provided_api_key)) -> None:
    """FastAPI dependency enforcing ``GEMCHAT_API_KEY`` when configured."""

    expected = _expected_api_key()
    if expected is None:
        if is_truthy(os.getenv("GEMCHAT_API_REQUIRE_KEY")):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="API key enforcement is enabled but GEMCHAT_API_KEY is not set.",
            )
        return

    if provided is None or not secrets.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid API key.",
        )
