"""
Async primitives: one-shot initialization and a registry for background tasks.
"""

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set

from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Tasks")


class AsyncOnce:
    """
    Run an async initializer at most once.

    Concurrent first callers all await the same in-flight task. If the
    initializer fails, the failure is propagated to every waiter and the next
    call tries again.
    """

    def __init__(self, func: Callable[[], Awaitable[Any]]):
        self._func = func
        self._task: Optional[asyncio.Future] = None

    async def __call__(self) -> Any:
        if self._task is None:
            self._task = asyncio.ensure_future(self._func())

        task = self._task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._task is task:
                self._task = None
            raise

    @property
    def done(self) -> bool:
        return (
            self._task is not None
            and self._task.done()
            and not self._task.cancelled()
            and self._task.exception() is None
        )


class BackgroundTasks:
    """Holds references to fire-and-forget tasks so they are not collected mid-flight."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all outstanding tasks (used in tests and on shutdown)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
