from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Collapse concurrent calls sharing a key into one in-flight task.

    Late callers await the existing task through ``asyncio.shield`` so that a
    cancelled waiter never cancels the shared work. The entry is removed from
    the map once the task finishes, whatever the outcome.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task[T]] = {}

    def in_flight(self, key: Hashable) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def drain(self) -> None:
        pending = [task for task in self._inflight.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def run(self, key: Hashable, work: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is not None and not task.done():
            logger.debug("Joining in-flight call key=%s", key)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(work())
        self._inflight[key] = task
        task.add_done_callback(lambda finished: self._forget(key, finished))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("In-flight call failed key=%s", key)
