"""Reminder scanner: turns due task reminders into notifications.

One pass:
1. select tasks with ``reminder_time <= now AND notified = false``
2. claim each one with a conditional UPDATE (committed on its own)
3. for each claimed task, insert a Notification and publish it to the hub

Delivery is at-most-once. A crash after step 2 and before the notification
row is committed leaves the task notified without a row; nothing backfills it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tasktrack.clock import Clock, SystemClock
from tasktrack.errors import StorageTransient
from tasktrack.notifications.schemas import NotificationEvent
from tasktrack.notifications.service import (
    create_notification,
    get_user_notification_preferences,
    should_push,
)
from tasktrack.reminders.store import claim_reminder, find_due_reminders

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tasktrack.notifications.hub import DeliveryHub

logger = structlog.get_logger()


def reminder_message(title: str) -> str:
    return f"Reminder: {title} is due soon!"


@dataclass
class ScanResult:
    due: int = 0
    claimed: int = 0
    notified: int = 0
    pushed: int = 0
    stopped_early: bool = False


@dataclass(frozen=True)
class _DueReminder:
    task_id: str
    user_id: str
    title: str
    reminder_time: datetime


class ReminderScanner:
    """Runs claim-and-notify passes over due reminders."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: DeliveryHub,
        clock: Clock | None = None,
        batch_size: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._hub = hub
        self._clock = clock or SystemClock()
        self._batch_size = batch_size

    async def run_once(self, stop: asyncio.Event | None = None) -> ScanResult:
        """
        Execute one pass.

        If ``stop`` is set the pass ends after the current claim-and-notify
        cycle. Storage errors abort the pass and surface as StorageTransient;
        unclaimed reminders stay eligible for the next pass.
        """
        result = ScanResult()
        now = self._clock.now()
        try:
            async with self._session_factory() as db:
                tasks = await find_due_reminders(db, now, limit=self._batch_size)
                due = [_DueReminder(t.id, t.user_id, t.title, t.reminder_time) for t in tasks]  # type: ignore[arg-type]
                result.due = len(due)

                for reminder in due:
                    if stop is not None and stop.is_set():
                        result.stopped_early = True
                        break
                    await self._process(db, reminder, result)
        except SQLAlchemyError as e:
            logger.error(
                "reminder_scan_failed",
                error=str(e),
                claimed=result.claimed,
                notified=result.notified,
            )
            raise StorageTransient("Reminder scan aborted") from e

        if result.due:
            logger.info(
                "reminder_scan_completed",
                due=result.due,
                claimed=result.claimed,
                notified=result.notified,
                pushed=result.pushed,
                stopped_early=result.stopped_early,
            )
        return result

    async def _process(self, db: AsyncSession, reminder: _DueReminder, result: ScanResult) -> None:
        claimed = await claim_reminder(db, reminder.task_id, reminder.reminder_time)
        await db.commit()
        if not claimed:
            logger.debug("reminder_claim_lost", task_id=reminder.task_id)
            return
        result.claimed += 1

        notification = await create_notification(
            db,
            user_id=reminder.user_id,
            message=reminder_message(reminder.title),
            now=self._clock.now(),
            task_id=reminder.task_id,
        )
        event = NotificationEvent.from_model(notification)
        await db.commit()
        result.notified += 1

        preferences = await get_user_notification_preferences(db, reminder.user_id)
        if should_push(preferences):
            delivered = self._hub.publish(reminder.user_id, event)
            result.pushed += 1
            logger.info(
                "reminder_notified",
                task_id=reminder.task_id,
                user_id=reminder.user_id,
                notification_id=event.id,
                recipients=delivered,
            )
        else:
            logger.info(
                "reminder_recorded_push_disabled",
                task_id=reminder.task_id,
                user_id=reminder.user_id,
                notification_id=event.id,
            )
