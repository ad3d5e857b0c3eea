"""Notification API endpoints, including the SSE stream."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.auth.dependencies import get_current_identity, get_stream_identity
from tasktrack.auth.service import Identity
from tasktrack.clock import Clock
from tasktrack.config import Settings
from tasktrack.dependencies import get_app_settings, get_clock, get_db, get_hub
from tasktrack.notifications.hub import DeliveryHub
from tasktrack.notifications.schemas import (
    NotificationListResponse,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationResponse,
    UnreadCountResponse,
)
from tasktrack.notifications.service import (
    delete_notification,
    get_notifications,
    get_unread_count,
    get_user_notification_preferences,
    mark_all_as_read,
    mark_as_read,
    update_notification_preferences,
)
from tasktrack.notifications.streaming import sse_events

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> NotificationListResponse:
    """List user's notifications (paginated, newest first)."""
    notifications, total = await get_notifications(db, identity.user_id, page, per_page)
    return NotificationListResponse(
        notifications=[NotificationResponse.from_model(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> UnreadCountResponse:
    count = await get_unread_count(db, identity.user_id)
    return UnreadCountResponse(unread_count=count)


@router.get("/stream")
async def notification_stream(
    request: Request,
    identity: Identity = Depends(get_stream_identity),
    hub: DeliveryHub = Depends(get_hub),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse:
    """
    Stream new notifications via Server-Sent Events.

    Events:
      event: notification
      data: {"id": "...", "task_id": "...", "message": "...", "created_at": "..."}

    Only notifications created after the stream opens are pushed; older ones
    come from the list endpoint.
    """
    return StreamingResponse(
        sse_events(hub, identity.user_id, request.is_disconnected, settings.sse_keepalive_seconds),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> NotificationPreferences:
    prefs = await get_user_notification_preferences(db, identity.user_id)
    return NotificationPreferences(**prefs)


@router.put("/preferences", response_model=NotificationPreferences)
async def put_preferences(
    body: NotificationPreferencesUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> NotificationPreferences:
    """Update notification toggles. Omitted fields keep their current value."""
    prefs = await update_notification_preferences(
        db, identity.user_id, body.model_dump(exclude_none=True), clock.now()
    )
    await db.commit()
    return NotificationPreferences(**prefs)


@router.post("/read-all", status_code=200)
async def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    count = await mark_all_as_read(db, identity.user_id)
    await db.commit()
    return {"detail": f"Marked {count} notifications as read"}


@router.post("/{notification_id}/read", status_code=200)
async def mark_notification_read(
    notification_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    found = await mark_as_read(db, identity.user_id, str(notification_id))
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return {"detail": "Notification marked as read"}


@router.delete("/{notification_id}", status_code=204)
async def remove_notification(
    notification_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Response:
    found = await delete_notification(db, identity.user_id, str(notification_id))
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    return Response(status_code=204)
