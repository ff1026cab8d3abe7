"""
Background executor for detached cache work.

Cache population and stale refreshes run after the response has been
produced. Each unit of work is submitted here instead of being left as a
dangling coroutine, so a failure is logged and dropped rather than surfacing
as an unhandled task exception.
"""

import asyncio
from typing import Awaitable, Optional, Set

from shared.logging import get_logger
from shared.metrics import MetricsCollector


class BackgroundTaskRunner:
    """Tracks fire-and-forget tasks with log-and-drop error handling."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics
        self.logger = get_logger("storefront.cache.background")
        self._tasks: Set[asyncio.Task] = set()
        self._accepting = True

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        self._accepting = True

    def submit(self, work: Awaitable, name: str) -> Optional[asyncio.Task]:
        """Schedule ``work`` on the running loop; returns ``None`` once stopped."""
        if not self._accepting:
            self.logger.warning("Background runner stopped, dropping task", task=name)
            if asyncio.iscoroutine(work):
                work.close()
            self._record("rejected")
            return None

        task = asyncio.get_running_loop().create_task(self._run(work, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, work: Awaitable, name: str) -> None:
        try:
            await work
        except asyncio.CancelledError:
            self._record("cancelled")
            raise
        except Exception as e:
            self.logger.warning("Background task failed", task=name, error=str(e))
            self._record("failed")
        else:
            self._record("succeeded")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for submitted tasks, including ones they submit. True when idle."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return True

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop accepting work, let in-flight tasks finish, cancel stragglers."""
        self._accepting = False
        if await self.drain(timeout):
            return

        stragglers = list(self._tasks)
        self.logger.warning("Cancelling unfinished background tasks", count=len(stragglers))
        for task in stragglers:
            task.cancel()
        await asyncio.gather(*stragglers, return_exceptions=True)

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_background_task(outcome)
