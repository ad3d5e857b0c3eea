"""Reminder columns of the tasks table: due-reminder queries and the claim CAS."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from tasktrack.db.models import Task

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def find_due_reminders(db: AsyncSession, now: datetime, limit: int = 500) -> list[Task]:
    """Tasks whose reminder time has passed and that have not been notified."""
    result = await db.execute(
        select(Task)
        .where(
            Task.reminder_time.is_not(None),
            Task.reminder_time <= now,
            Task.notified.is_(False),
        )
        .order_by(Task.reminder_time)
        .limit(limit)
    )
    return list(result.scalars().all())


async def claim_reminder(db: AsyncSession, task_id: str, reminder_time: datetime) -> bool:
    """
    Mark a due reminder as notified if nobody else has.

    Conditioning on the reminder time seen by the scan also loses the race
    against an owner who rescheduled in between.
    """
    result = await db.execute(
        update(Task)
        .where(
            Task.id == task_id,
            Task.notified.is_(False),
            Task.reminder_time == reminder_time,
        )
        .values(notified=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]


async def schedule_reminder(
    db: AsyncSession,
    task_id: str,
    owner_id: str,
    reminder_time: datetime | None,
    now: datetime,
) -> bool:
    """
    Set or clear a task's reminder. Returns False if the task is not the owner's.

    Setting a time re-arms the reminder (``notified = false``) in the same
    statement; clearing it cancels any pending reminder.
    """
    result = await db.execute(
        update(Task)
        .where(Task.id == task_id, Task.user_id == owner_id)
        .values(reminder_time=reminder_time, notified=False, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1  # type: ignore[attr-defined]
