"""Tracking for fire-and-forget tasks so shutdown can wait for or cancel them."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from chatbridge.core.logging.logger import get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for running tasks; whatever is still running after ``timeout`` is cancelled."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} background task(s) on shutdown")
            await asyncio.gather(*pending, return_exceptions=True)
