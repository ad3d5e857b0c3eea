"""FastAPI authentication dependencies.

The access-token check is stateless: nothing here opens a database session.
"""

from __future__ import annotations

import structlog
from fastapi import Depends, Query, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tasktrack.auth.service import Identity, TokenService
from tasktrack.errors import AuthorizationDenied, InvalidCredential

_bearer = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service  # type: ignore[no-any-return]


def _authenticate(request: Request, token: str | None, tokens: TokenService) -> Identity:
    if not token:
        raise InvalidCredential("Missing bearer token")
    identity = tokens.validate_access(token)
    request.state.identity = identity
    structlog.contextvars.bind_contextvars(user_id=identity.user_id)
    return identity


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """
    Extract and verify the bearer access token, return the caller's Identity.

    Raises InvalidCredential (401) on any failure.
    """
    return _authenticate(request, credentials.credentials if credentials else None, tokens)


async def get_stream_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    token: str | None = Query(None),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """Like get_current_identity, but also accepts ``?token=`` for EventSource clients."""
    raw = credentials.credentials if credentials else token
    return _authenticate(request, raw, tokens)


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Role gate for admin routes. Raises AuthorizationDenied (403)."""
    if not identity.is_admin:
        raise AuthorizationDenied("Admin access required")
    return identity
