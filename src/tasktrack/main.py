"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasktrack.admin.router import router as admin_router
from tasktrack.auth.router import router as auth_router
from tasktrack.auth.service import TokenService
from tasktrack.clock import Clock, SystemClock
from tasktrack.config import Settings, get_settings
from tasktrack.database import close_db, create_tables, get_session_factory, init_db
from tasktrack.health.router import router as health_router
from tasktrack.middleware import setup_middleware
from tasktrack.notifications.hub import DeliveryHub
from tasktrack.notifications.router import router as notifications_router
from tasktrack.notifications.ws import router as ws_router
from tasktrack.redis_client import close_redis, init_redis
from tasktrack.reminders.router import router as reminders_router
from tasktrack.reminders.scanner import ReminderScanner
from tasktrack.reminders.scheduler import PeriodicTask

logger = structlog.get_logger()


def build_services(
    app: FastAPI,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock | None = None,
) -> None:
    """Construct the long-lived services and attach them to ``app.state``.

    Periodic tasks are created here but only started by the lifespan.
    """
    clock = clock or SystemClock()
    hub = DeliveryHub(buffer_size=settings.subscriber_buffer_size)
    token_service = TokenService(session_factory, settings, clock)
    scanner = ReminderScanner(session_factory, hub, clock, batch_size=settings.reminder_batch_size)
    purge_grace = timedelta(days=settings.refresh_token_purge_grace_days)

    async def purge_tokens(_stop: object) -> None:
        await token_service.purge_expired(older_than=purge_grace)

    app.state.settings = settings
    app.state.clock = clock
    app.state.hub = hub
    app.state.token_service = token_service
    app.state.scanner = scanner
    app.state.periodic_tasks = [
        PeriodicTask("reminder_scanner", settings.reminder_scan_interval_seconds, scanner.run_once),
        PeriodicTask("refresh_token_purge", settings.refresh_token_purge_interval_seconds, purge_tokens),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    if settings.database_auto_create:
        await create_tables()

    build_services(app, settings, get_session_factory())
    if settings.scheduler_enabled:
        for task in app.state.periodic_tasks:
            task.start()
    logger.info("app_started", version=settings.app_version, environment=settings.environment)

    yield

    for task in app.state.periodic_tasks:
        await task.stop()
    closed = app.state.hub.close_all()
    logger.info("app_stopping", subscriptions_closed=closed)

    await close_db()
    await close_redis()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="TaskTrack API",
        description="Token lifecycle, task reminders and real-time notification delivery",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(notifications_router)
    app.include_router(reminders_router)
    app.include_router(ws_router)

    return app


app = create_app()
