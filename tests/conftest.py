"""Shared test fixtures.

Each test gets its own SQLite file, a frozen clock and an app whose services
are built directly (the lifespan is not run, and Redis is never initialised,
so rate limiting passes requests through).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasktrack.auth.service import TokenService
from tasktrack.config import Settings
from tasktrack.database import close_db, create_tables, get_session_factory, init_db
from tasktrack.db.models import User
from tasktrack.main import build_services, create_app
from tasktrack.notifications.hub import DeliveryHub
from tests.fakes import FrozenClock, create_user


def make_settings(tmp_path: Path, **overrides: object) -> Settings:
    values: dict[str, object] = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'tasktrack.db'}",
        "scheduler_enabled": False,
        "log_format": "console",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def session_factory(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a temporary SQLite file."""
    await init_db(settings.database_url)
    await create_tables()
    yield get_session_factory()
    await close_db()


@pytest.fixture
def hub(settings: Settings) -> DeliveryHub:
    return DeliveryHub(buffer_size=settings.subscriber_buffer_size)


@pytest.fixture
def token_service(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    clock: FrozenClock,
) -> TokenService:
    return TokenService(session_factory, settings, clock)


@pytest_asyncio.fixture
async def user(session_factory: async_sessionmaker[AsyncSession], clock: FrozenClock) -> User:
    return await create_user(session_factory, clock)


@pytest_asyncio.fixture
async def admin_user(session_factory: async_sessionmaker[AsyncSession], clock: FrozenClock) -> User:
    return await create_user(session_factory, clock, role="admin")


@pytest.fixture
def app(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
) -> FastAPI:
    application = create_app(settings)
    build_services(application, settings, session_factory, clock)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, app: FastAPI, user: User) -> AsyncClient:
    """Client carrying a bearer access token for ``user``."""
    pair = await app.state.token_service.issue(user)
    client.headers["Authorization"] = f"Bearer {pair.access_token}"
    return client
