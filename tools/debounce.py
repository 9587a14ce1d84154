"""
DebounceTimer — Runs a callback once a quiet period passes with no new activity.

Pure Python + asyncio. The owner calls arm() on every mutation; each call
restarts the wait. When the wait finishes undisturbed the callback runs
as its own task. fire_now() skips the wait (used for save and close).

Callback exceptions are logged, never raised into the event loop.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("Debounce")


class DebounceTimer:
    """Cancellable quiet-period timer.

    Usage:
        timer = DebounceTimer(0.5, flush)
        timer.arm()          # on each edit
        await timer.fire_now()  # on save / close
    """

    def __init__(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ):
        self.delay_seconds: float = delay_seconds
        self._callback = callback
        self._timer_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def is_armed(self) -> bool:
        """True while a quiet period is counting down."""
        return self._timer_task is not None and not self._timer_task.done()

    def arm(self):
        """Start the quiet period, restarting it if already armed."""
        loop = asyncio.get_running_loop()
        self.cancel()
        self._timer_task = loop.create_task(self._wait())

    def reset(self):
        """Restart the quiet period if one is running. Does nothing when idle."""
        if self.is_armed:
            self.arm()

    def cancel(self):
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None

    async def fire_now(self):
        """Cancel any pending wait and run the callback immediately."""
        self.cancel()
        await self._run()

    async def wait_idle(self):
        """Wait until the armed timer (if any) and its callback have finished."""
        while True:
            task = self._timer_task if self.is_armed else self._run_task
            if task is None or task.done():
                return
            await asyncio.gather(task, return_exceptions=True)

    async def _wait(self):
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            return  # re-armed or cancelled
        self._timer_task = None
        self._run_task = asyncio.create_task(self._run())

    async def _run(self):
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Debounced callback error: {e}", exc_info=True)
