"""Admin-only session management."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends

from tasktrack.auth.dependencies import get_token_service, require_admin
from tasktrack.auth.schemas import RevokedResponse
from tasktrack.auth.service import Identity, TokenService

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post("/users/{user_id}/revoke-sessions", response_model=RevokedResponse)
async def revoke_user_sessions(
    user_id: uuid.UUID,
    admin: Identity = Depends(require_admin),
    tokens: TokenService = Depends(get_token_service),
) -> RevokedResponse:
    """Force-logout a user everywhere. Live access tokens still run to expiry."""
    count = await tokens.revoke_all(str(user_id))
    logger.info("admin_revoked_sessions", admin_id=admin.user_id, target_user_id=str(user_id), revoked_count=count)
    return RevokedResponse(status="sessions_revoked", revoked_count=count)
