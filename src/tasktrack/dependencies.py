"""Shared FastAPI dependencies.

Long-lived services are built once in the application lifespan and stored on
``app.state``; these accessors hand them to route handlers.
"""

from fastapi import Request

from tasktrack.clock import Clock
from tasktrack.config import Settings
from tasktrack.database import get_session as _get_session
from tasktrack.notifications.hub import DeliveryHub

get_db = _get_session


def get_hub(request: Request) -> DeliveryHub:
    return request.app.state.hub  # type: ignore[no-any-return]


def get_clock(request: Request) -> Clock:
    return request.app.state.clock  # type: ignore[no-any-return]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]
