from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine

logger = logging.getLogger(__name__)


class TaskScope:
    """
    Owns a set of asyncio tasks so they can be cancelled together.
    Used as `async with TaskScope() as scope:`; leaving the block cancels
    whatever is still pending.
    """

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._done)
        return task

    def call_later(
        self, delay: float, callback: Callable[[], Awaitable[Any]], name: str | None = None
    ) -> asyncio.Task:
        async def _run() -> None:
            await asyncio.sleep(delay)
            await callback()

        return self.spawn(_run(), name=name)

    def cancel_all(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def __aenter__(self) -> TaskScope:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cancel_all()
        current = asyncio.current_task()
        others = [t for t in self._tasks if t is not current]
        if others:
            await asyncio.gather(*others, return_exceptions=True)

    def _done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[%s] task %s failed: %r", self.name, task.get_name(), exc)
