"""Middleware registration."""

from fastapi import FastAPI

from tasktrack.config import Settings
from tasktrack.middleware.cors import setup_cors
from tasktrack.middleware.error_handler import setup_error_handlers
from tasktrack.middleware.logging import setup_logging
from tasktrack.middleware.rate_limit import RateLimitMiddleware
from tasktrack.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette executes middleware in reverse-add order (last added = outermost).
    CORS is outermost so it also wraps 401 and 429 responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
