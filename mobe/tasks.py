"""Tracking of fire-and-forget asyncio tasks."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Set

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """Keeps references to spawned tasks and logs the ones that fail."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[None]] = set()

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background task failed", task=task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait for every pending task, swallowing their outcome."""

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)


__all__ = ["BackgroundTasks"]
