import asyncio
import inspect
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Fire-and-forget task group.

    Holds strong references to scheduled tasks so they are not garbage
    collected mid-flight, and logs (never raises) their failures.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any] | None:
        """Schedule a coroutine on the running loop without awaiting it."""
        if not inspect.iscoroutine(coro):
            logger.warning("Expected a coroutine, got %s", type(coro).__name__)
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping background task %s", name or coro)
            coro.close()
            return None

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    async def drain(self) -> None:
        """Wait until every scheduled task (including ones they spawn) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
