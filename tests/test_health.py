"""Health, readiness and version endpoint tests."""

from __future__ import annotations

from httpx import AsyncClient


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_version(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.json() == {"version": "0.1.0", "environment": "development"}


async def test_ready_without_redis_is_degraded(client: AsyncClient, app) -> None:
    app.state.hub.subscribe("alice")

    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["redis"].startswith("error")
    assert data["delivery"] == {"total_subscriptions": 1, "unique_users": 1}
    assert set(data["schedulers"]) == {"reminder_scanner", "refresh_token_purge"}
    assert data["schedulers"]["reminder_scanner"]["running"] is False
