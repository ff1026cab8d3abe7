"""
Cancellable debounce timer for asyncio.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from shared.logging import get_logger


class DebounceTimer:
    """Runs ``action`` once ``delay`` seconds after the last ``schedule()`` call.

    Only the waiting period is cancellable. Once the action has started it
    runs to completion even if the timer is rescheduled meanwhile. Actions
    never overlap: a firing that lands while one is running is queued and
    runs once the current action returns, however many firings landed.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]]):
        if delay < 0:
            raise ValueError("delay must not be negative")
        self.delay = delay
        self.action = action
        self.logger = get_logger("storefront_sync.debounce")
        self._waiter: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        self._rerun = False

    @property
    def pending(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    def schedule(self) -> None:
        self.cancel()
        self._waiter = asyncio.get_running_loop().create_task(self._wait_then_fire())

    def cancel(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()
        self._waiter = None

    async def flush(self) -> None:
        """Fire a pending action now, then wait for any action in flight."""
        if self.pending:
            self.cancel()
            self._start_action()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        while self._running is not None and not self._running.done():
            await asyncio.gather(self._running, return_exceptions=True)

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self.delay)
        self._waiter = None
        self._start_action()

    def _start_action(self) -> None:
        if self._running is not None and not self._running.done():
            self._rerun = True
            return
        self._running = asyncio.get_running_loop().create_task(self._run_action())

    async def _run_action(self) -> None:
        while True:
            self._rerun = False
            try:
                await self.action()
            except Exception as e:
                self.logger.error("Debounced action failed", error=str(e))
            if not self._rerun:
                return
