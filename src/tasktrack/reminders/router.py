"""Reminder scheduling endpoint."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.auth.dependencies import get_current_identity
from tasktrack.auth.service import Identity
from tasktrack.clock import Clock
from tasktrack.dependencies import get_clock, get_db
from tasktrack.reminders.schemas import ReminderResponse, ReminderUpdate
from tasktrack.reminders.store import schedule_reminder

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/tasks", tags=["Reminders"])


@router.put("/{task_id}/reminder", response_model=ReminderResponse)
async def put_reminder(
    task_id: uuid.UUID,
    body: ReminderUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ReminderResponse:
    """Schedule, move or cancel the reminder on one of the caller's tasks.

    Any change re-arms the reminder, so a moved reminder fires again even if
    the old one already did.
    """
    found = await schedule_reminder(db, str(task_id), identity.user_id, body.reminder_time, clock.now())
    if not found:
        raise HTTPException(status_code=404, detail="Task not found")
    await db.commit()

    logger.info(
        "reminder_scheduled" if body.reminder_time else "reminder_cancelled",
        task_id=str(task_id),
        reminder_time=body.reminder_time.isoformat() if body.reminder_time else None,
    )
    return ReminderResponse(task_id=str(task_id), reminder_time=body.reminder_time, notified=False)
