"""Token router: /api/v1/auth/* endpoints.

Login, registration and OAuth callbacks live in the account collaborator;
they call ``TokenService.issue`` and return a ``TokenResponse``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from tasktrack.auth.dependencies import get_current_identity, get_token_service
from tasktrack.auth.schemas import (
    IdentityResponse,
    LogoutRequest,
    RefreshRequest,
    RevokedResponse,
    TokenResponse,
)
from tasktrack.auth.service import Identity, TokenService

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> TokenResponse:
    """Rotate a refresh token. Any failure is a plain 401."""
    pair = await tokens.rotate(
        body.refresh_token,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return TokenResponse.from_pair(pair)


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    tokens: TokenService = Depends(get_token_service),
) -> dict[str, str]:
    """Revoke a refresh token. Same response whether or not the token was live."""
    await tokens.revoke(body.refresh_token)
    return {"status": "logged_out"}


@router.post("/logout-all", response_model=RevokedResponse)
async def logout_all(
    identity: Identity = Depends(get_current_identity),
    tokens: TokenService = Depends(get_token_service),
) -> RevokedResponse:
    """Revoke all refresh tokens for the current user."""
    count = await tokens.revoke_all(identity.user_id)
    return RevokedResponse(status="all_sessions_revoked", revoked_count=count)


@router.get("/me", response_model=IdentityResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity carried by the access token."""
    return IdentityResponse(user_id=identity.user_id, role=identity.role)
