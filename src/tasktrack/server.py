"""Serving entrypoint.

Open notification streams only end when the delivery hub is closed. The stock
uvicorn shutdown waits for open connections before it runs the lifespan
shutdown, so the hub is closed here first, while connections are still being
drained.
"""

from __future__ import annotations

import socket

import structlog
import uvicorn
from fastapi import FastAPI

from tasktrack.config import Settings, get_settings

logger = structlog.get_logger()


class Server(uvicorn.Server):
    """uvicorn server that ends live notification streams before draining connections."""

    def __init__(self, app: FastAPI, config: uvicorn.Config) -> None:
        super().__init__(config)
        self._app = app

    async def shutdown(self, sockets: list[socket.socket] | None = None) -> None:
        hub = getattr(self._app.state, "hub", None)
        if hub is not None:
            closed = hub.close_all()
            logger.info("streams_closed_for_shutdown", subscriptions_closed=closed)
        await super().shutdown(sockets=sockets)


def build_server(
    app: FastAPI | None = None,
    settings: Settings | None = None,
    host: str | None = None,
    port: int | None = None,
) -> Server:
    settings = settings or get_settings()
    if app is None:
        from tasktrack.main import app as default_app

        app = default_app
    config = uvicorn.Config(
        app,
        host=settings.api_host if host is None else host,
        port=settings.api_port if port is None else port,
        log_level=settings.log_level.lower(),
        log_config=None,
        timeout_graceful_shutdown=settings.graceful_shutdown_seconds,
    )
    return Server(app, config)


def main() -> None:
    build_server().run()


if __name__ == "__main__":
    main()
