"""Tests for the /api/v1/notifications endpoints."""

from __future__ import annotations

import uuid

from httpx import AsyncClient

from tasktrack.notifications.service import create_notification


async def _seed(session_factory, clock, user_id: str, count: int = 2) -> list[str]:
    ids = []
    async with session_factory() as db:
        for i in range(count):
            notification = await create_notification(db, user_id, f"note {i}", clock.advance(seconds=1))
            ids.append(notification.id)
        await db.commit()
    return ids


async def test_requires_authentication(client: AsyncClient) -> None:
    for path in ("/api/v1/notifications", "/api/v1/notifications/unread-count", "/api/v1/notifications/stream"):
        response = await client.get(path)
        assert response.status_code == 401, path


async def test_stream_rejects_bad_query_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/notifications/stream", params={"token": "bogus"})
    assert response.status_code == 401


async def test_list_and_count(authed_client: AsyncClient, session_factory, clock, user) -> None:
    await _seed(session_factory, clock, user.id, count=3)

    response = await authed_client.get("/api/v1/notifications", params={"per_page": 2})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert [n["message"] for n in data["notifications"]] == ["note 2", "note 1"]
    assert all(n["is_read"] is False for n in data["notifications"])

    response = await authed_client.get("/api/v1/notifications/unread-count")
    assert response.json() == {"unread_count": 3}


async def test_mark_read_and_read_all(authed_client: AsyncClient, session_factory, clock, user) -> None:
    ids = await _seed(session_factory, clock, user.id, count=3)

    response = await authed_client.post(f"/api/v1/notifications/{ids[0]}/read")
    assert response.status_code == 200
    assert (await authed_client.get("/api/v1/notifications/unread-count")).json() == {"unread_count": 2}

    response = await authed_client.post("/api/v1/notifications/read-all")
    assert response.json() == {"detail": "Marked 2 notifications as read"}
    assert (await authed_client.get("/api/v1/notifications/unread-count")).json() == {"unread_count": 0}


async def test_other_users_notification_is_not_found(
    authed_client: AsyncClient, session_factory, clock, admin_user
) -> None:
    (foreign_id,) = await _seed(session_factory, clock, admin_user.id, count=1)

    assert (await authed_client.post(f"/api/v1/notifications/{foreign_id}/read")).status_code == 404
    assert (await authed_client.delete(f"/api/v1/notifications/{foreign_id}")).status_code == 404


async def test_delete(authed_client: AsyncClient, session_factory, clock, user) -> None:
    (notification_id,) = await _seed(session_factory, clock, user.id, count=1)

    response = await authed_client.delete(f"/api/v1/notifications/{notification_id}")
    assert response.status_code == 204
    response = await authed_client.delete(f"/api/v1/notifications/{uuid.uuid4()}")
    assert response.status_code == 404


async def test_invalid_id_is_validation_error(authed_client: AsyncClient) -> None:
    response = await authed_client.post("/api/v1/notifications/not-a-uuid/read")
    assert response.status_code == 422


async def test_preferences_round_trip(authed_client: AsyncClient) -> None:
    response = await authed_client.get("/api/v1/notifications/preferences")
    assert response.json() == {"enabled": True, "push_enabled": True, "email_enabled": False}

    response = await authed_client.put("/api/v1/notifications/preferences", json={"push_enabled": False})
    assert response.status_code == 200
    assert response.json() == {"enabled": True, "push_enabled": False, "email_enabled": False}

    response = await authed_client.get("/api/v1/notifications/preferences")
    assert response.json()["push_enabled"] is False
