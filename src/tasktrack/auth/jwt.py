"""
Access token encoding and verification.

Access tokens are self-contained JWTs: ``{sub, role, iat, exp, iss, type, jti}``.
Expiry is checked against the caller's clock rather than PyJWT's own
``time.time()`` so that minting and validation share one time source.

HS* algorithms sign with ``jwt_secret``; RS*/ES* algorithms load PEM keys
from disk (cached after first use).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import jwt

from tasktrack.config import Settings, get_settings

_private_key: str | None = None
_public_key: str | None = None

_REQUIRED_CLAIMS = ["sub", "role", "iat", "exp", "type", "jti"]


def _load_keys(settings: Settings) -> tuple[str, str]:
    """Return (signing key, verification key) for the configured algorithm."""
    global _private_key, _public_key  # noqa: PLW0603
    if settings.jwt_algorithm.startswith("HS"):
        return settings.jwt_secret, settings.jwt_secret
    if _private_key is None or _public_key is None:
        _private_key = Path(settings.jwt_private_key_path).read_text()
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _private_key, _public_key


def reset_keys() -> None:
    """Reset cached PEM keys (useful for testing)."""
    global _private_key, _public_key  # noqa: PLW0603
    _private_key = None
    _public_key = None


def create_access_token(
    user_id: str,
    role: str,
    *,
    now: datetime,
    settings: Settings | None = None,
) -> tuple[str, datetime]:
    """
    Create a short-lived access token.

    Args:
        user_id: The user's id.
        role: ``user`` or ``admin``.
        now: Issue time from the service clock.
        settings: Overrides the cached application settings.

    Returns:
        Tuple of (encoded JWT, expiry timestamp).
    """
    settings = settings or get_settings()
    signing_key, _ = _load_keys(settings)
    expires_at = now + timedelta(minutes=settings.access_token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "iss": settings.jwt_issuer,
        "type": "access",
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm), expires_at


def decode_access_token(
    token: str,
    *,
    now: datetime,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: On bad signature, malformed payload, wrong
            issuer or type, or ``now >= exp``.
    """
    settings = settings or get_settings()
    _, verify_key = _load_keys(settings)
    payload: dict[str, Any] = jwt.decode(
        token,
        verify_key,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"verify_exp": False, "verify_iat": False, "require": _REQUIRED_CLAIMS},
    )

    if payload.get("type") != "access":
        msg = f"Expected token type 'access', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    exp = payload["exp"]
    if not isinstance(exp, int) or isinstance(exp, bool):
        msg = "Expiration claim must be an integer"
        raise jwt.InvalidTokenError(msg)
    if now.timestamp() >= exp:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg)

    return payload
