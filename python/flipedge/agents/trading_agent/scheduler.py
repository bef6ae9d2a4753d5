"""Single-shot, cancellable wake timer driving an agent's control loop"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from loguru import logger

from flipedge.utils.ts import utc_now


class WakeScheduler:
    """Run `callback` once after a delay; at most one wake is pending.

    Scheduling a new wake replaces the pending one. `cancel()` only drops
    the pending timer: a callback that already started keeps running to
    completion, and it is up to the caller not to reschedule afterwards.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "wake",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._callback = callback
        self._name = name
        self._clock = clock if clock is not None else utc_now
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._next_wake_at: Optional[datetime] = None

    @property
    def next_wake_at(self) -> Optional[datetime]:
        return self._next_wake_at

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def running_task(self) -> Optional[asyncio.Task]:
        """Task of the callback currently in flight, if any."""
        if self._task is not None and not self._task.done():
            return self._task
        return None

    def schedule(self, delay: float) -> None:
        """Arm the timer to fire after `delay` seconds (replaces any pending wake)."""
        loop = asyncio.get_running_loop()
        self._cancel_handle()
        delay = max(0.0, float(delay))
        self._next_wake_at = self._clock() + timedelta(seconds=delay)
        self._handle = loop.call_later(delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending wake, leaving any in-flight callback alone."""
        self._cancel_handle()
        self._next_wake_at = None

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._next_wake_at = None
        self._task = asyncio.create_task(self._run(), name=self._name)

    async def _run(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            # the callback owns its error handling; this only keeps the loop quiet
            logger.exception("Unhandled error in scheduled callback {}", self._name)

    async def wait_idle(self) -> None:
        """Wait for an in-flight callback (if any) to finish."""
        task = self.running_task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
