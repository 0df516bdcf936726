"""Per-key coalescing of refresh work."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class InflightRegistry:
    """
    At most one running refresh per key.

    Concurrent callers for the same key await the same task. The task is
    shielded from caller cancellation: when the last caller goes away it keeps
    running for ``grace_seconds`` (so its result still lands in the store) and
    is cancelled if nobody re-joins before then.
    """

    def __init__(self, grace_seconds: float = 30.0):
        self.grace_seconds = grace_seconds
        self._tasks: dict[Hashable, asyncio.Task] = {}
        self._waiters: dict[asyncio.Task, int] = {}
        self._reapers: dict[Hashable, asyncio.TimerHandle] = {}

    def is_running(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``factory()`` for ``key`` or join the run already in flight."""
        task = self._tasks.get(key)
        if task is None or task.done():
            task = asyncio.create_task(factory(), name=f"refresh:{key}")
            self._tasks[key] = task
            task.add_done_callback(lambda finished, k=key: self._forget(k, finished))
        else:
            logger.debug(f"Joining in-flight refresh for {key}")

        self._cancel_reaper(key)
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            remaining = self._waiters.get(task, 1) - 1
            if remaining > 0:
                self._waiters[task] = remaining
            else:
                self._waiters.pop(task, None)
                if not task.done():
                    self._schedule_reaper(key, task)

    def _schedule_reaper(self, key: Hashable, task: asyncio.Task) -> None:
        logger.debug(f"No callers left for {key}, cancelling in {self.grace_seconds:.0f}s")
        loop = asyncio.get_running_loop()
        self._reapers[key] = loop.call_later(self.grace_seconds, self._reap, key, task)

    def _cancel_reaper(self, key: Hashable) -> None:
        handle: Optional[asyncio.TimerHandle] = self._reapers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _reap(self, key: Hashable, task: asyncio.Task) -> None:
        self._reapers.pop(key, None)
        if not task.done() and not self._waiters.get(task):
            logger.warning(f"Cancelling orphaned refresh for {key}")
            task.cancel()

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            self._tasks.pop(key, None)
            self._cancel_reaper(key)

        # Mark the outcome retrieved; callers (if any) already saw it
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Refresh for {key} failed: {task.exception()}")
