from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DebouncedFlusher:
    """Coalesce repeated ``mark_dirty`` calls into one delayed write.

    The delay is measured from the first mark of a burst, so a steady stream
    of marks still produces a write at least every ``delay_seconds``.
    """

    def __init__(self, flush: Callable[[], Awaitable[None]], *, delay_seconds: float = 5.0) -> None:
        self._flush = flush
        self._delay_seconds = delay_seconds
        self._task: asyncio.Task[None] | None = None
        self._dirty = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def mark_dirty(self) -> None:
        self._dirty = True
        if self.pending:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no running loop; flushed synchronously on shutdown
            return
        self._task = loop.create_task(self._run_after_delay())

    def cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush_now(self) -> None:
        await self._cancel_timer()
        await self._write()

    async def close(self) -> None:
        await self._cancel_timer()
        if self._dirty:
            await self._write()

    async def _run_after_delay(self) -> None:
        await asyncio.sleep(self._delay_seconds)
        self._task = None
        await self._write()

    async def _cancel_timer(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _write(self) -> None:
        self._dirty = False
        try:
            await self._flush()
        except Exception:
            self._dirty = True
            logger.exception("Debounced flush failed")
