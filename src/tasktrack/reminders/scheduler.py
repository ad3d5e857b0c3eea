"""Periodic background task runner owned by the application lifespan."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()

PeriodicCallback = Callable[[asyncio.Event], Awaitable[Any]]


class PeriodicTask:
    """Run ``callback(stop_event)`` every ``interval`` seconds until stopped.

    A failing pass is logged and the loop keeps ticking. ``stop()`` does not
    cancel an in-flight pass: it sets the stop event and waits for the pass to
    return.
    """

    def __init__(self, name: str, interval: float, callback: PeriodicCallback) -> None:
        self.name = name
        self.interval = interval
        self._callback = callback
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("periodic_task_started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it to finish its current pass."""
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("periodic_task_stopped", task=self.name, runs=self.runs, failures=self.failures)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self._callback(self._stop)
            except Exception as e:
                self.failures += 1
                logger.error("periodic_task_failed", task=self.name, error=str(e), exc_info=e)
            self.runs += 1

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "interval": self.interval,
            "runs": self.runs,
            "failures": self.failures,
        }
