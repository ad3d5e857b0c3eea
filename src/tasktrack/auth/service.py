"""
Token service: issuance, validation, rotation and revocation.

Access tokens are stateless and validated by signature and expiry only.
Refresh tokens are opaque random strings tracked in the credential store and
are single-use: every successful rotation revokes the presented token and
issues a replacement in the same transaction.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import jwt
import structlog

from tasktrack.auth import store
from tasktrack.auth.jwt import create_access_token, decode_access_token
from tasktrack.clock import Clock, SystemClock
from tasktrack.errors import InvalidCredential

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tasktrack.config import Settings
    from tasktrack.db.models import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, derived from access-token claims only."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int
    user_id: str


class TokenService:
    """Mints and checks credentials. One instance per application."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings
        self.clock = clock or SystemClock()

    @property
    def access_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_lifetime(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    async def issue(
        self,
        user: User,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """Create a new session for ``user``: one refresh row plus a fresh access token."""
        if not user.is_active:
            msg = "User is inactive"
            raise InvalidCredential(msg)

        async with self._session_factory() as db:
            pair = await self._mint_pair(db, user.id, user.role, ip_address=ip_address, user_agent=user_agent)
            await db.commit()

        logger.info("tokens_issued", user_id=user.id)
        return pair

    async def _mint_pair(
        self,
        db: AsyncSession,
        user_id: str,
        role: str,
        *,
        token_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        now = self.clock.now()
        raw_refresh = secrets.token_urlsafe(48)
        await store.store_refresh_token(
            db,
            user_id=user_id,
            token_id=token_id or str(uuid.uuid4()),
            token_hash=store.hash_token(raw_refresh),
            issued_at=now,
            expires_at=now + self.refresh_lifetime,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
        )
        access_token, _ = create_access_token(user_id, role, now=now, settings=self.settings)
        return TokenPair(
            access_token=access_token,
            refresh_token=raw_refresh,
            access_expires_in=int(self.access_lifetime.total_seconds()),
            refresh_expires_in=int(self.refresh_lifetime.total_seconds()),
            user_id=user_id,
        )

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate_access(self, token: str) -> Identity:
        """Verify signature and expiry. Never consults the store."""
        try:
            payload = decode_access_token(token, now=self.clock.now(), settings=self.settings)
        except jwt.InvalidTokenError as e:
            raise InvalidCredential(str(e)) from e

        user_id = payload.get("sub")
        role = payload.get("role")
        if not isinstance(user_id, str) or role not in ("user", "admin"):
            msg = "Malformed access token claims"
            raise InvalidCredential(msg)
        return Identity(user_id=user_id, role=role)

    # ------------------------------------------------------------------
    # Rotate
    # ------------------------------------------------------------------

    async def rotate(
        self,
        refresh_token: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """Exchange a live refresh token for a new pair, revoking the old token."""
        token_hash = store.hash_token(refresh_token)

        async with self._session_factory() as db:
            now = self.clock.now()
            old = await store.get_refresh_token_by_hash(db, token_hash)
            if old is None:
                raise InvalidCredential("Refresh token not found")
            old_id, owner_id = old.id, old.user_id

            if old.is_revoked:
                if old.replaced_by is not None:
                    await self._handle_reuse(db, owner_id, old_id, now)
                raise InvalidCredential("Refresh token has been revoked")

            if now >= old.expires_at:
                raise InvalidCredential("Refresh token has expired")

            user = await store.get_user_by_id(db, owner_id)
            if user is None or not user.is_active:
                await store.revoke_refresh_token_by_hash(db, token_hash, now)
                await db.commit()
                raise InvalidCredential("User not found or inactive")

            new_token_id = str(uuid.uuid4())
            role = user.role
            claimed = await store.claim_refresh_token(db, old_id, now, replaced_by=new_token_id)
            if not claimed:
                await db.rollback()
                logger.info("refresh_token_rotation_conflict", user_id=owner_id, token_id=old_id)
                raise InvalidCredential("Refresh token already rotated")

            pair = await self._mint_pair(
                db,
                owner_id,
                role,
                token_id=new_token_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await db.commit()

        logger.info("refresh_token_rotated", user_id=owner_id, old_token_id=old_id, new_token_id=new_token_id)
        return pair

    async def _handle_reuse(self, db: AsyncSession, user_id: str, token_id: str, now: datetime) -> None:
        """A token revoked by rotation was presented again: treat as possible theft."""
        policy = self.settings.refresh_reuse_policy
        revoked = 0
        if policy == "revoke_all":
            revoked = await store.revoke_all_tokens(db, user_id, now)
            await db.commit()
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=user_id,
            token_id=token_id,
            policy=policy,
            revoked_count=revoked,
        )

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    async def revoke(self, refresh_token: str) -> None:
        """Revoke a refresh token (logout). Silent for unknown or already-revoked tokens."""
        async with self._session_factory() as db:
            changed = await store.revoke_refresh_token_by_hash(db, store.hash_token(refresh_token), self.clock.now())
            await db.commit()
        if changed:
            logger.info("refresh_token_revoked")

    async def revoke_all(self, user_id: str, *, exclude_token_id: str | None = None) -> int:
        """Revoke every live refresh token of a user."""
        async with self._session_factory() as db:
            count = await store.revoke_all_tokens(db, user_id, self.clock.now(), exclude_token_id=exclude_token_id)
            await db.commit()
        logger.info("refresh_tokens_revoked_all", user_id=user_id, revoked_count=count)
        return count

    async def purge_expired(self, *, older_than: timedelta = timedelta(0)) -> int:
        """Delete refresh tokens whose expiry is more than ``older_than`` in the past."""
        async with self._session_factory() as db:
            count = await store.delete_expired_tokens(db, self.clock.now() - older_than)
            await db.commit()
        if count:
            logger.info("refresh_tokens_purged", count=count)
        return count
