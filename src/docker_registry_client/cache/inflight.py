"""
In-flight request coalescing.

At most one task runs per key; concurrent callers for the same key await
that task instead of starting their own.
"""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Coroutine, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["InFlight"]

T = TypeVar("T")


class InFlight(Generic[T]):
    """
    Registry of pending tasks keyed by cache key.

    Invariants:
    - the lookup and the insert in ``run`` happen without an await between them
    - a waiter that is cancelled never cancels the shared task; it runs to
      completion and its outcome reaches every other waiter
    - a key is removed as soon as its task finishes, success or failure
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    async def run(self, key: str, factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
        """
        Await the pending task for ``key``, starting it with ``factory`` if none.

        Args:
            key: Coalescing key
            factory: Zero-argument coroutine function producing the result

        Returns:
            The shared task's result

        Raises:
            Whatever the shared task raises, to every waiter
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.create_task(factory())
            self._tasks[key] = task
            task.add_done_callback(partial(self._finished, key))
        else:
            logger.debug(f"Joining in-flight request for {key}")
        return await asyncio.shield(task)

    def _finished(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Mark the outcome retrieved so an unawaited failure is not reported as lost
        if not task.cancelled():
            task.exception()

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
