"""
Task Supervisor
===============
Owns background pipeline tasks started from request handlers.

Request handlers return as soon as work is accepted; the processing
coroutine runs here. Every task is kept referenced until it finishes and
its outcome is logged, so a failure is never silently lost.
"""

import asyncio
from typing import Awaitable, Optional, Set

from ..core.logging_config import get_logger

logger = get_logger(__name__)


class TaskSupervisor:
    """Tracks fire-and-forget tasks and cancels stragglers on shutdown."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def is_running(self, name: str) -> bool:
        """True if an unfinished task was spawned under ``name``."""
        return any(task.get_name() == name and not task.done() for task in self._tasks)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task failed: {task.get_name()}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def join(self) -> None:
        """Wait for every task that is currently running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Give running tasks ``timeout`` seconds, then cancel the rest."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} background task(s) on shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)
