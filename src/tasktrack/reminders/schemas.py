"""Pydantic schemas for reminder scheduling."""

from datetime import datetime

from pydantic import BaseModel, field_validator


class ReminderUpdate(BaseModel):
    """Set ``reminder_time`` to schedule, ``null`` to cancel."""

    reminder_time: datetime | None = None

    @field_validator("reminder_time")
    @classmethod
    def require_timezone(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            msg = "reminder_time must include a timezone offset"
            raise ValueError(msg)
        return v


class ReminderResponse(BaseModel):
    task_id: str
    reminder_time: datetime | None
    notified: bool
