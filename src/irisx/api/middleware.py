"""Middleware: optional API key check for every /api/v1 route."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from irisx.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)
_header_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


def _configured_key(request: Request) -> str | None:
    settings: Settings = request.app.state.settings
    return settings.api_key


def _matches(candidate: str | None, expected: str) -> bool:
    return candidate is not None and secrets.compare_digest(candidate.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    bearer: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    header_key: Annotated[str | None, Depends(_header_scheme)],
) -> None:
    """Reject the request unless it carries the configured key.

    Without IRISX_API_KEY every request passes. Otherwise the key is accepted
    either as 'Authorization: Bearer <key>' or as 'X-API-Key: <key>'.
    """
    expected = _configured_key(request)
    if expected is None:
        return

    token = bearer.credentials if bearer is not None else None
    if _matches(token, expected) or _matches(header_key, expected):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
