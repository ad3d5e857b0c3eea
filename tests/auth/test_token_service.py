"""Tests for the token service: issue, validate, rotate, revoke, purge."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy import select, update

from tasktrack.auth.service import TokenPair, TokenService
from tasktrack.auth.store import hash_token
from tasktrack.db.models import RefreshToken, User
from tasktrack.errors import InvalidCredential
from tests.conftest import make_settings
from tests.fakes import create_user


async def _token_row(session_factory, raw: str) -> RefreshToken:
    async with session_factory() as db:
        result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw)))
        return result.scalar_one()


class TestIssue:
    async def test_issue_stores_only_hash(self, token_service, session_factory, user) -> None:
        pair = await token_service.issue(user, ip_address="10.0.0.1", user_agent="pytest")
        assert pair.user_id == user.id
        assert pair.access_expires_in == 15 * 60
        assert pair.refresh_expires_in == 7 * 24 * 3600

        row = await _token_row(session_factory, pair.refresh_token)
        assert row.user_id == user.id
        assert row.token_hash != pair.refresh_token
        assert row.is_revoked is False
        assert row.ip_address == "10.0.0.1"
        assert row.expires_at - row.issued_at == timedelta(days=7)

    async def test_issue_inactive_user_rejected(self, token_service, session_factory, clock) -> None:
        inactive = await create_user(session_factory, clock, is_active=False)
        with pytest.raises(InvalidCredential):
            await token_service.issue(inactive)


class TestValidateAccess:
    async def test_identity_from_claims(self, token_service, user) -> None:
        pair = await token_service.issue(user)
        identity = token_service.validate_access(pair.access_token)
        assert identity.user_id == user.id
        assert identity.role == "user"
        assert identity.is_admin is False

    async def test_admin_identity(self, token_service, admin_user) -> None:
        pair = await token_service.issue(admin_user)
        assert token_service.validate_access(pair.access_token).is_admin is True

    async def test_expired_access_token(self, token_service, clock, user) -> None:
        pair = await token_service.issue(user)
        clock.advance(minutes=15)
        with pytest.raises(InvalidCredential):
            token_service.validate_access(pair.access_token)

    async def test_garbage_rejected(self, token_service) -> None:
        with pytest.raises(InvalidCredential):
            token_service.validate_access("not-a-jwt")

    async def test_access_token_survives_session_revocation(self, token_service, user) -> None:
        """Access tokens are stateless and run to expiry."""
        pair = await token_service.issue(user)
        await token_service.revoke_all(user.id)
        assert token_service.validate_access(pair.access_token).user_id == user.id


class TestRotate:
    async def test_rotate_revokes_old_and_links_replacement(self, token_service, session_factory, user) -> None:
        first = await token_service.issue(user)
        second = await token_service.rotate(first.refresh_token)

        assert second.refresh_token != first.refresh_token
        assert token_service.validate_access(second.access_token).user_id == user.id

        old_row = await _token_row(session_factory, first.refresh_token)
        new_row = await _token_row(session_factory, second.refresh_token)
        assert old_row.is_revoked is True
        assert old_row.replaced_by == new_row.id
        assert new_row.is_revoked is False

    async def test_rotate_chain(self, token_service, user) -> None:
        pair = await token_service.issue(user)
        for _ in range(3):
            pair = await token_service.rotate(pair.refresh_token)
        assert token_service.validate_access(pair.access_token).user_id == user.id

    async def test_unknown_token(self, token_service) -> None:
        with pytest.raises(InvalidCredential):
            await token_service.rotate("never-issued")

    async def test_expired_refresh_token(self, token_service, clock, user) -> None:
        pair = await token_service.issue(user)
        clock.advance(days=7)
        with pytest.raises(InvalidCredential):
            await token_service.rotate(pair.refresh_token)

    async def test_reuse_revokes_all_sessions(self, token_service, user) -> None:
        first = await token_service.issue(user)
        second = await token_service.rotate(first.refresh_token)

        with pytest.raises(InvalidCredential):
            await token_service.rotate(first.refresh_token)
        # The legitimate successor is gone too.
        with pytest.raises(InvalidCredential):
            await token_service.rotate(second.refresh_token)

    async def test_reuse_with_reject_policy_keeps_successor(self, tmp_path: Path, session_factory, clock, user) -> None:
        service = TokenService(session_factory, make_settings(tmp_path, refresh_reuse_policy="reject"), clock)
        first = await service.issue(user)
        second = await service.rotate(first.refresh_token)

        with pytest.raises(InvalidCredential):
            await service.rotate(first.refresh_token)
        third = await service.rotate(second.refresh_token)
        assert third.user_id == user.id

    async def test_inactive_user_cannot_rotate(self, token_service, session_factory, user) -> None:
        pair = await token_service.issue(user)
        async with session_factory() as db:
            await db.execute(update(User).where(User.id == user.id).values(is_active=False))
            await db.commit()

        with pytest.raises(InvalidCredential):
            await token_service.rotate(pair.refresh_token)
        row = await _token_row(session_factory, pair.refresh_token)
        assert row.is_revoked is True

    async def test_role_change_reflected_on_rotation(self, token_service, session_factory, user) -> None:
        pair = await token_service.issue(user)
        async with session_factory() as db:
            await db.execute(update(User).where(User.id == user.id).values(role="admin"))
            await db.commit()

        rotated = await token_service.rotate(pair.refresh_token)
        assert token_service.validate_access(rotated.access_token).is_admin is True

    async def test_concurrent_rotations_single_winner(self, tmp_path: Path, session_factory, clock, user) -> None:
        service = TokenService(session_factory, make_settings(tmp_path, refresh_reuse_policy="reject"), clock)
        pair = await service.issue(user)

        results = await asyncio.gather(
            *(service.rotate(pair.refresh_token) for _ in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, TokenPair)]
        losers = [r for r in results if isinstance(r, InvalidCredential)]
        assert len(winners) == 1
        assert len(losers) == 4
        # The winner's replacement is live.
        assert (await service.rotate(winners[0].refresh_token)).user_id == user.id

    async def test_concurrent_rotations_default_policy(self, token_service, session_factory, user) -> None:
        assert token_service.settings.refresh_reuse_policy == "revoke_all"
        pair = await token_service.issue(user)

        results = await asyncio.gather(
            *(token_service.rotate(pair.refresh_token) for _ in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, TokenPair)]
        losers = [r for r in results if isinstance(r, InvalidCredential)]
        assert len(winners) == 1
        assert len(losers) == 4
        assert (await _token_row(session_factory, pair.refresh_token)).is_revoked
        # A loser that arrives after the winner commits counts as reuse and may
        # revoke the winner's token too; it never leaves more than one live.
        async with session_factory() as db:
            live = (
                await db.execute(
                    select(RefreshToken).where(RefreshToken.user_id == user.id, RefreshToken.is_revoked.is_(False))
                )
            ).scalars().all()
        assert len(live) <= 1


class TestRevoke:
    async def test_logout_then_rotate_fails(self, token_service, user) -> None:
        pair = await token_service.issue(user)
        await token_service.revoke(pair.refresh_token)
        with pytest.raises(InvalidCredential):
            await token_service.rotate(pair.refresh_token)

    async def test_revoke_unknown_is_silent(self, token_service) -> None:
        await token_service.revoke("never-issued")

    async def test_revoke_all(self, token_service, user, admin_user) -> None:
        a = await token_service.issue(user)
        b = await token_service.issue(user)
        other = await token_service.issue(admin_user)

        assert await token_service.revoke_all(user.id) == 2
        for pair in (a, b):
            with pytest.raises(InvalidCredential):
                await token_service.rotate(pair.refresh_token)
        assert (await token_service.rotate(other.refresh_token)).user_id == admin_user.id

    async def test_revoke_all_twice_counts_zero(self, token_service, user) -> None:
        await token_service.issue(user)
        await token_service.revoke_all(user.id)
        assert await token_service.revoke_all(user.id) == 0


class TestPurge:
    async def test_purge_expired(self, token_service, session_factory, clock, user) -> None:
        old = await token_service.issue(user)
        clock.advance(days=8)
        fresh = await token_service.issue(user)

        assert await token_service.purge_expired() == 1
        async with session_factory() as db:
            rows = (await db.execute(select(RefreshToken))).scalars().all()
        assert [r.token_hash for r in rows] == [hash_token(fresh.refresh_token)]
        assert hash_token(old.refresh_token) not in {r.token_hash for r in rows}

    async def test_purge_grace_period(self, token_service, clock, user) -> None:
        await token_service.issue(user)
        clock.advance(days=7, hours=12)
        assert await token_service.purge_expired(older_than=timedelta(days=1)) == 0
        clock.advance(days=1)
        assert await token_service.purge_expired(older_than=timedelta(days=1)) == 1
