"""Server-Sent Events framing for a hub subscription."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from tasktrack.notifications.hub import DeliveryHub
from tasktrack.notifications.schemas import NotificationEvent

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse(event: NotificationEvent) -> str:
    return f"id: {event.id}\nevent: notification\ndata: {event.model_dump_json()}\n\n"


async def sse_events(
    hub: DeliveryHub,
    user_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for ``user_id`` until the hub closes the stream or the
    client goes away.

    The subscription is opened when the response starts streaming and is
    always unregistered on exit, including when the response task is
    cancelled by a client disconnect.
    """
    subscription = hub.subscribe(user_id)
    try:
        yield ": connected\n\n"
        while True:
            try:
                event = await asyncio.wait_for(subscription.next_event(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    break
                yield KEEPALIVE_FRAME
                continue
            if event is None:
                break
            yield format_sse(event)
    finally:
        hub.unsubscribe(subscription, reason=subscription.close_reason or "client_disconnected")
