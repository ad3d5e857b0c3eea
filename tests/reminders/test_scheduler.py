"""Tests for the periodic task runner."""

from __future__ import annotations

import asyncio

from tasktrack.reminders.scheduler import PeriodicTask


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestPeriodicTask:
    async def test_runs_repeatedly_until_stopped(self) -> None:
        calls = 0

        async def tick(_stop: asyncio.Event) -> None:
            nonlocal calls
            calls += 1

        task = PeriodicTask("tick", 0.01, tick)
        task.start()
        await _wait_until(lambda: calls >= 3)
        await task.stop()

        assert not task.running
        stopped_at = calls
        await asyncio.sleep(0.05)
        assert calls == stopped_at

    async def test_failure_does_not_stop_loop(self) -> None:
        calls = 0

        async def flaky(_stop: asyncio.Event) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")

        task = PeriodicTask("flaky", 0.01, flaky)
        task.start()
        await _wait_until(lambda: calls >= 2)
        await task.stop()

        assert task.failures == 1
        assert task.get_stats()["runs"] >= 2

    async def test_stop_waits_for_in_flight_pass(self) -> None:
        started = asyncio.Event()
        saw_stop = []
        finished = []

        async def slow(stop: asyncio.Event) -> None:
            started.set()
            await asyncio.sleep(0.05)
            saw_stop.append(stop.is_set())
            finished.append(True)

        task = PeriodicTask("slow", 60, slow)
        task.start()
        await started.wait()
        await task.stop()

        assert finished == [True]
        assert saw_stop == [True]

    async def test_stop_interrupts_idle_wait(self) -> None:
        async def noop(_stop: asyncio.Event) -> None:
            return None

        task = PeriodicTask("idle", 3600, noop)
        task.start()
        await asyncio.sleep(0.01)
        await asyncio.wait_for(task.stop(), timeout=1)
        assert task.runs == 1

    async def test_stop_without_start(self) -> None:
        async def noop(_stop: asyncio.Event) -> None:
            return None

        task = PeriodicTask("never", 1, noop)
        await task.stop()
        assert not task.running
