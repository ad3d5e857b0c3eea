"""WebSocket notification endpoint with JWT authentication."""

from __future__ import annotations

import asyncio
import json

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from tasktrack.errors import InvalidCredential
from tasktrack.notifications.hub import DeliveryHub, Subscription

logger = structlog.get_logger()

router = APIRouter()


async def _pump_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json({"type": "notification", "data": event.model_dump(mode="json")})
    # Closed by the hub (overflow or shutdown).
    await websocket.close(code=1013 if subscription.close_reason == "overflow" else 1001)


async def _read_client(websocket: WebSocket) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "message": "Invalid JSON"})
            continue

        action = msg.get("action") if isinstance(msg, dict) else None
        if action == "ping":
            await websocket.send_json({"type": "pong"})
        else:
            await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})


@router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Push notifications for the authenticated user.

    Protocol:
        Client -> Server:
            {"action": "ping"}

        Server -> Client:
            {"type": "notification", "data": {"id", "task_id", "message", "created_at"}}
            {"type": "pong"}
            {"type": "error", "message": "..."}
    """
    state = websocket.app.state
    try:
        identity = state.token_service.validate_access(token)
    except InvalidCredential:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    hub: DeliveryHub = state.hub
    if hub.subscriber_count(identity.user_id) >= state.settings.ws_max_connections_per_user:
        await websocket.close(code=4008, reason="Too many connections")
        return

    await websocket.accept()
    subscription = hub.subscribe(identity.user_id)
    pump = asyncio.create_task(_pump_events(websocket, subscription))
    reader = asyncio.create_task(_read_client(websocket))
    try:
        done, pending = await asyncio.wait({pump, reader}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("ws_error", subscription_id=subscription.id, error=str(exc))
    finally:
        for task in (pump, reader):
            if not task.done():
                task.cancel()
        hub.unsubscribe(subscription, reason=subscription.close_reason or "client_disconnected")
