"""Cancellable periodic tasks.

A ``PeriodicTask`` owns one asyncio task that calls a coroutine function on a
fixed interval until ``stop()`` is awaited. Failures inside a run are logged
and the loop carries on.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(
        self,
        name: str,
        interval_s: float,
        fn: Callable[[], Awaitable[object]],
        *,
        initial_delay_s: float | None = None,
    ) -> None:
        """
        Args:
            name: Label used in logs.
            interval_s: Delay between the end of one run and the start of the next.
            fn: Coroutine function to call each period.
            initial_delay_s: Delay before the first run. ``None`` waits a full
                interval, ``0`` runs immediately on start.
        """
        if interval_s <= 0:
            raise ValueError(f"interval must be positive, got {interval_s}")
        self.name = name
        self.interval_s = interval_s
        self._fn = fn
        self._initial_delay_s = interval_s if initial_delay_s is None else initial_delay_s
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        self._stopping.set()
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run_once(self) -> None:
        """Run the wrapped function once, logging instead of raising on failure."""
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception("Periodic task %s failed", self.name)
        finally:
            self.runs += 1

    async def _wait(self, delay_s: float) -> bool:
        """Sleep for ``delay_s`` unless stopped first. Returns True if stopped."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay_s)
        except TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        if self._initial_delay_s > 0 and await self._wait(self._initial_delay_s):
            return
        while not self._stopping.is_set():
            await self.run_once()
            if await self._wait(self.interval_s):
                return
