"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.config import Settings
from tasktrack.dependencies import get_app_settings, get_db, get_hub
from tasktrack.notifications.hub import DeliveryHub
from tasktrack.redis_client import get_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    request: Request,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    hub: DeliveryHub = Depends(get_hub),  # noqa: B008
) -> JSONResponse:
    """Readiness probe: checks the database (required) and Redis (optional)."""
    checks: dict[str, object] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    # Redis only backs rate limiting, so it degrades the status without failing it
    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except (RuntimeError, RedisError) as exc:
        checks["redis"] = f"error: {exc}"

    schedulers = getattr(request.app.state, "periodic_tasks", [])
    ready = checks["database"] == "ok"
    status = "ready" if ready and checks["redis"] == "ok" else ("degraded" if ready else "unavailable")
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": status,
            "checks": checks,
            "delivery": hub.get_stats(),
            "schedulers": {task.name: task.get_stats() for task in schedulers},
        },
    )


@router.get("/version")
async def version(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:  # noqa: B008
    """Return API version and environment."""
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
