"""Pydantic schemas for notification endpoints and real-time events."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from tasktrack.db.models import Notification


class NotificationEvent(BaseModel):
    """Unit pushed over SSE/WebSocket: ``{id, task_id|null, message, created_at}``."""

    model_config = ConfigDict(frozen=True)

    id: str
    task_id: str | None
    message: str
    created_at: datetime

    @classmethod
    def from_model(cls, notification: Notification) -> NotificationEvent:
        return cls(
            id=notification.id,
            task_id=notification.task_id,
            message=notification.message,
            created_at=notification.created_at,
        )


class NotificationResponse(NotificationEvent):
    is_read: bool

    @classmethod
    def from_model(cls, notification: Notification) -> NotificationResponse:
        return cls(
            id=notification.id,
            task_id=notification.task_id,
            message=notification.message,
            created_at=notification.created_at,
            is_read=notification.is_read,
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class NotificationPreferences(BaseModel):
    enabled: bool = True
    push_enabled: bool = True
    email_enabled: bool = False


class NotificationPreferencesUpdate(BaseModel):
    enabled: bool | None = None
    push_enabled: bool | None = None
    email_enabled: bool | None = None
