"""
Credential store: refresh-token rows and their revocation state.

Every mutation is a single conditionally-guarded statement. Callers own the
transaction (flush here, commit in the service).
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update

from tasktrack.db.models import RefreshToken, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest used as the lookup key for an opaque refresh token."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def store_refresh_token(
    db: AsyncSession,
    user_id: str,
    token_id: str,
    token_hash: str,
    issued_at: datetime,
    expires_at: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> RefreshToken:
    """Insert a refresh token row."""
    token = RefreshToken(
        id=token_id,
        user_id=user_id,
        token_hash=token_hash,
        issued_at=issued_at,
        expires_at=expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(token)
    await db.flush()
    return token


async def get_refresh_token_by_hash(db: AsyncSession, token_hash: str) -> RefreshToken | None:
    """Look up a refresh token by the hash of its raw value."""
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
    return result.scalar_one_or_none()


async def claim_refresh_token(
    db: AsyncSession,
    token_id: str,
    now: datetime,
    replaced_by: str,
) -> bool:
    """
    Revoke a live token as part of rotation.

    The WHERE clause is the serialization point: of several concurrent callers
    only one sees ``rowcount == 1``.
    """
    result = await db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.id == token_id,
            RefreshToken.is_revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .values(is_revoked=True, revoked_at=now, replaced_by=replaced_by)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]


async def revoke_refresh_token_by_hash(db: AsyncSession, token_hash: str, now: datetime) -> bool:
    """Revoke a token if it is still live. Returns True if a row changed."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.token_hash == token_hash, RefreshToken.is_revoked.is_(False))
        .values(is_revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]


async def revoke_all_tokens(
    db: AsyncSession,
    user_id: str,
    now: datetime,
    exclude_token_id: str | None = None,
) -> int:
    """Revoke all live refresh tokens for a user. Returns count revoked."""
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .where(RefreshToken.is_revoked.is_(False))
    )
    if exclude_token_id:
        stmt = stmt.where(RefreshToken.id != exclude_token_id)
    stmt = stmt.values(is_revoked=True, revoked_at=now).execution_options(synchronize_session=False)
    result = await db.execute(stmt)
    return result.rowcount  # type: ignore[attr-defined,no-any-return]


async def delete_expired_tokens(db: AsyncSession, before: datetime) -> int:
    """Physically delete tokens that expired before ``before``."""
    result = await db.execute(
        delete(RefreshToken)
        .where(RefreshToken.expires_at <= before)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount  # type: ignore[attr-defined,no-any-return]
