"""Tests for periodic task scheduling."""

import asyncio

from core.scheduler import PeriodicTask


def test_run_once_logs_failures_instead_of_raising() -> None:
    async def broken() -> None:
        raise RuntimeError("boom")

    task = PeriodicTask("broken", 60.0, broken)
    asyncio.run(task.run_once())

    assert task.runs == 1
    assert task.failures == 1


def test_loop_keeps_running_after_failure_and_stops() -> None:
    calls: list[int] = []

    async def flaky() -> None:
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    async def scenario() -> PeriodicTask:
        task = PeriodicTask("flaky", 0.01, flaky, initial_delay_s=0)
        task.start()
        await asyncio.sleep(0.1)
        await task.stop()
        return task

    task = asyncio.run(scenario())
    assert len(calls) >= 2
    assert task.failures == 1
    assert not task.running


def test_initial_delay_defers_first_run() -> None:
    calls: list[int] = []

    async def record() -> None:
        calls.append(1)

    async def scenario() -> None:
        task = PeriodicTask("slow", 60.0, record)
        task.start()
        await asyncio.sleep(0.05)
        await task.stop()

    asyncio.run(scenario())
    assert calls == []
