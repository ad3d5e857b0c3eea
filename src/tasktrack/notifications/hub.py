"""Delivery hub: in-memory fan-out of new notifications to live subscribers.

Tracks, per user, the set of open real-time subscriptions (SSE streams and
WebSockets). Each subscription owns a bounded queue; ``publish`` never waits on
a slow consumer. A subscriber whose buffer overflows is closed and dropped.

Registry mutations are plain synchronous code with no awaits, so they are
atomic on the asyncio event loop.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict

import structlog

from tasktrack.errors import DeliveryOverflow
from tasktrack.notifications.schemas import NotificationEvent

logger = structlog.get_logger()

_CLOSED = object()


class Subscription:
    """One live connection's view of a user's notification events.

    Async-iterable: yields events in publish order until closed.
    """

    def __init__(self, user_id: str, buffer_size: int) -> None:
        self.id = str(uuid.uuid4())
        self.user_id = user_id
        self.connected_at = time.time()
        self.messages_sent = 0
        self.close_reason: str | None = None
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=buffer_size + 1)
        self._buffer_size = buffer_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: NotificationEvent) -> None:
        """Enqueue without waiting. Raises DeliveryOverflow when the buffer is full."""
        if self._closed:
            return
        # One slot is reserved for the close marker.
        if self._queue.qsize() >= self._buffer_size:
            raise DeliveryOverflow(f"subscription {self.id} buffer full")
        self._queue.put_nowait(event)
        self.messages_sent += 1

    def close(self, reason: str = "closed") -> None:
        """Stop the stream; the consumer sees end-of-iteration after draining."""
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        if reason == "overflow":
            # Drop the backlog; the client re-syncs from the list endpoint.
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def next_event(self) -> NotificationEvent | None:
        """Wait for the next event; None once the subscription is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter.
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> NotificationEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event


class DeliveryHub:
    """Registry of live subscriptions keyed by user id."""

    def __init__(self, buffer_size: int = 64) -> None:
        if buffer_size < 1:
            msg = "buffer_size must be positive"
            raise ValueError(msg)
        self.buffer_size = buffer_size
        self._subscriptions: dict[str, dict[str, Subscription]] = defaultdict(dict)
        self._shut_down = False

    def subscribe(self, user_id: str) -> Subscription:
        """Open a subscription. Only events published after this call are delivered.

        After ``close_all`` the returned subscription is already closed.
        """
        subscription = Subscription(user_id, self.buffer_size)
        if self._shut_down:
            subscription.close("shutdown")
            return subscription
        self._subscriptions[user_id][subscription.id] = subscription
        logger.info("subscriber_connected", user_id=user_id, subscription_id=subscription.id)
        return subscription

    def unsubscribe(self, subscription: Subscription, reason: str = "closed") -> None:
        """Remove and close a subscription. Idempotent."""
        subscription.close(reason)
        user_subs = self._subscriptions.get(subscription.user_id)
        if user_subs is None or user_subs.pop(subscription.id, None) is None:
            return
        if not user_subs:
            del self._subscriptions[subscription.user_id]
        logger.info(
            "subscriber_disconnected",
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            reason=reason,
            messages_sent=subscription.messages_sent,
        )

    def publish(self, user_id: str, event: NotificationEvent) -> int:
        """Deliver to every open subscription of ``user_id``.

        Returns the number of subscriptions that accepted the event. With no
        subscribers the event is dropped from the real-time path.
        """
        user_subs = self._subscriptions.get(user_id)
        if not user_subs:
            return 0

        sent = 0
        overflowed: list[Subscription] = []
        for subscription in list(user_subs.values()):
            try:
                subscription.offer(event)
                sent += 1
            except DeliveryOverflow:
                overflowed.append(subscription)

        for subscription in overflowed:
            logger.warning(
                "subscriber_overflow",
                user_id=user_id,
                subscription_id=subscription.id,
                buffer_size=self.buffer_size,
            )
            self.unsubscribe(subscription, reason="overflow")

        return sent

    def close_all(self) -> int:
        """Close every subscription (shutdown). Returns how many were closed."""
        self._shut_down = True
        subscriptions = [s for subs in self._subscriptions.values() for s in subs.values()]
        for subscription in subscriptions:
            self.unsubscribe(subscription, reason="shutdown")
        return len(subscriptions)

    def subscriber_count(self, user_id: str | None = None) -> int:
        if user_id is not None:
            return len(self._subscriptions.get(user_id, {}))
        return sum(len(subs) for subs in self._subscriptions.values())

    def get_stats(self) -> dict[str, int]:
        """Get connection statistics."""
        return {
            "total_subscriptions": self.subscriber_count(),
            "unique_users": len(self._subscriptions),
        }
