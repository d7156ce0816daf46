"""
Fixed-Interval Scheduler

Provides ScheduledLoop, which fires an async callback at wall-clock
interval boundaries, accounting for callback execution time so ticks
do not drift.

- Fires at exact wall-clock boundaries
- Skips missed intervals instead of queueing them
- A failing callback is logged and the loop keeps running

Usage:
    async def tick():
        ...

    loop = ScheduledLoop(1.0, tick, name="metrics")
    await loop.start()
    ...
    await loop.stop()
"""

import asyncio
import time
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")

# Lateness beyond this is a system clock jump, not drift
CLOCK_JUMP_S = 30


class ScheduledLoop:
    """
    Interval scheduler that accounts for execution time.

    The next run is scheduled relative to the original schedule, not
    relative to when the callback finished.

    Drift, skipped intervals and callback failures are reported by
    get_stats().
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None

        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._error_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")

    async def stop(self) -> None:
        """Stop the scheduled loop and wait for the task to finish."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _next_boundary(self, now: float) -> float:
        return ((now // self.interval) + 1) * self.interval

    async def _run(self) -> None:
        """Fire the callback on each interval boundary until stopped."""
        self._next_run = self._next_boundary(time.time())

        while self._running:
            wait = self._next_run - time.time()
            if wait > self.interval:
                # Wall clock moved backwards
                self._next_run = self._next_boundary(time.time())
                wait = self._next_run - time.time()
            if wait > 0:
                await asyncio.sleep(wait)
            if not self._running:
                break

            self._note_drift(time.time() - self._next_run)
            await self._fire()
            self._advance(time.time())

    def _note_drift(self, drift: float) -> None:
        if drift > CLOCK_JUMP_S:
            logger.info(f"Scheduler '{self.name}' clock jump detected ({drift:.0f}s), realigning")
            self._last_drift_ms = 0
            return
        self._drift_total += max(0, drift)
        self._last_drift_ms = drift * 1000

    async def _fire(self) -> None:
        start = time.time()
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error_count += 1
            logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)
        else:
            self._execution_count += 1
        self._last_execution_time = time.time() - start

    def _advance(self, now: float) -> None:
        """Move to the first boundary after now, counting missed ones."""
        if self._next_run > now:
            return
        # The first boundary passed is the one just fired
        passed = int((now - self._next_run) // self.interval) + 1
        self._next_run += passed * self.interval

        if passed > 1:
            self._skipped_count += passed - 1
            logger.warning(
                f"Scheduler '{self.name}' skipped {passed - 1} intervals "
                f"(execution took {self._last_execution_time:.3f}s)"
            )

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
