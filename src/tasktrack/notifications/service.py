"""Notification store: persisted per-user notifications and preferences.

Notifications are:
1. Persisted in the database (always, regardless of preferences)
2. Pushed to live subscribers via the DeliveryHub when preferences allow

Preferences only gate real-time delivery; undelivered is never unrecorded.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tasktrack.db.models import Notification, UserSettings

DEFAULT_PREFERENCES: dict[str, bool] = {
    "enabled": True,
    "push_enabled": True,
    "email_enabled": False,
}


def merge_preferences(stored: dict[str, Any] | None) -> dict[str, bool]:
    """Overlay stored toggles on the defaults, ignoring unknown keys."""
    merged = dict(DEFAULT_PREFERENCES)
    for key, value in (stored or {}).items():
        if key in merged and isinstance(value, bool):
            merged[key] = value
    return merged


def should_push(preferences: dict[str, bool]) -> bool:
    """Whether a new notification may be pushed to real-time subscribers."""
    return preferences.get("enabled", True) and preferences.get("push_enabled", True)


async def get_user_notification_preferences(db: AsyncSession, user_id: str) -> dict[str, bool]:
    """Get user's notification preferences, falling back to defaults."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    return merge_preferences(settings.notifications if settings else None)


async def update_notification_preferences(
    db: AsyncSession,
    user_id: str,
    changes: dict[str, bool],
    now: datetime,
) -> dict[str, bool]:
    """Apply toggle changes and return the merged preferences."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = UserSettings(user_id=user_id, notifications={})
        db.add(settings)

    updated = merge_preferences(settings.notifications)
    updated.update({k: v for k, v in changes.items() if k in DEFAULT_PREFERENCES})
    # Reassign so the JSON column is flagged dirty.
    settings.notifications = updated
    settings.updated_at = now
    await db.flush()
    return updated


async def create_notification(
    db: AsyncSession,
    user_id: str,
    message: str,
    now: datetime,
    task_id: str | None = None,
) -> Notification:
    """Insert a notification row and flush it so it has an id."""
    notification = Notification(
        user_id=user_id,
        task_id=task_id,
        message=message,
        is_read=False,
        created_at=now,
    )
    db.add(notification)
    await db.flush()
    return notification


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount > 0  # type: ignore[attr-defined,no-any-return]


async def mark_all_as_read(db: AsyncSession, user_id: str) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount  # type: ignore[attr-defined,no-any-return]


async def delete_notification(db: AsyncSession, user_id: str, notification_id: str) -> bool:
    """Delete one of the user's notifications. Returns True if found."""
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    await db.flush()
    return result.rowcount > 0  # type: ignore[attr-defined,no-any-return]


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()
