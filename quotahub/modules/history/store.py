from __future__ import annotations

import logging
import math
from collections.abc import Iterable

import anyio

from quotahub.core.exceptions import HistoryFormatError
from quotahub.core.quotas.types import QuotaEntry, QuotaSample
from quotahub.core.utils.debounce import DebouncedFlusher
from quotahub.core.utils.time import hours_to_ms, now_ms
from quotahub.modules.history.storage import HistoryData, HistoryFileStorage, HistoryLoadStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_HOURS = 24.0
DEFAULT_RESET_THRESHOLD = 0.20


class HistoryStore:
    """Bounded per-quota time series backed by a JSON file.

    Appends detect counter resets and prune each series to ``max_age``.
    Writes are debounced; ``flush`` and ``flush_sync`` write immediately.
    """

    def __init__(
        self,
        storage: HistoryFileStorage,
        *,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
        reset_threshold: float = DEFAULT_RESET_THRESHOLD,
        save_debounce_seconds: float = 5.0,
    ) -> None:
        self._storage = storage
        self._data: HistoryData = {}
        self._max_age_ms = hours_to_ms(DEFAULT_MAX_AGE_HOURS)
        self._reset_threshold = DEFAULT_RESET_THRESHOLD
        self._write_lock = anyio.Lock()
        self._flusher = DebouncedFlusher(self._write, delay_seconds=save_debounce_seconds)
        self.set_max_age(max_age_hours)
        self.set_reset_threshold(reset_threshold)

    @property
    def storage(self) -> HistoryFileStorage:
        return self._storage

    @property
    def max_age_ms(self) -> float:
        return self._max_age_ms

    @property
    def reset_threshold(self) -> float:
        return self._reset_threshold

    @property
    def dirty(self) -> bool:
        return self._flusher.dirty

    def __len__(self) -> int:
        return len(self._data)

    def quota_ids(self) -> list[str]:
        return list(self._data)

    async def load(self) -> None:
        try:
            result = await anyio.to_thread.run_sync(self._storage.load)
        except HistoryFormatError as exc:
            logger.error("History parse failed path=%s error=%s", self._storage.path, exc.message)
            self._data = {}
            return
        except Exception:
            logger.exception("History load failed path=%s", self._storage.path)
            self._data = {}
            return

        self._data = result.data
        if result.status == HistoryLoadStatus.MIGRATED:
            logger.info("History migrated path=%s from=legacy to=%d", self._storage.path, 1)
            if self._data:
                await self.flush()
        elif result.status == HistoryLoadStatus.UNSUPPORTED_VERSION:
            logger.warning(
                "History format version unsupported path=%s version=%s, loading best-effort",
                self._storage.path,
                result.version,
            )
        logger.debug("History loaded path=%s quotas=%d", self._storage.path, len(self._data))

    async def append(self, entries: Iterable[QuotaEntry], *, now: int | None = None) -> None:
        timestamp = now_ms() if now is None else now
        appended = False
        for entry in entries:
            self._append_one(entry, timestamp)
            appended = True
        if appended:
            self._flusher.mark_dirty()

    def get_history(self, quota_id: str, window_ms: float, *, now: int | None = None) -> list[QuotaSample]:
        samples = self._data.get(quota_id)
        if not samples:
            return []
        current = now_ms() if now is None else now
        cutoff = current - window_ms
        return [sample for sample in samples if sample.timestamp >= cutoff]

    def set_max_age(self, hours: float) -> None:
        if not _is_positive(hours):
            logger.warning("Invalid history max age hours=%r, keeping=%s", hours, self._max_age_ms)
            return
        self._max_age_ms = hours_to_ms(hours)

    def set_reset_threshold(self, value: float) -> None:
        if not _is_positive(value) or value > 100:
            logger.warning("Invalid history reset threshold=%r, keeping=%s", value, self._reset_threshold)
            return
        self._reset_threshold = value / 100 if value > 1 else value

    async def prune_all(self, *, now: int | None = None) -> int:
        cutoff = (now_ms() if now is None else now) - self._max_age_ms
        removed = 0
        changed = False
        for quota_id in list(self._data):
            samples = self._data[quota_id]
            kept = [sample for sample in samples if sample.timestamp >= cutoff]
            removed += len(samples) - len(kept)
            if kept:
                self._data[quota_id] = kept
            else:
                del self._data[quota_id]
                changed = True
        if removed or changed:
            self._flusher.mark_dirty()
        return removed

    async def flush(self) -> None:
        await self._flusher.flush_now()

    async def close(self) -> None:
        await self._flusher.close()

    def flush_sync(self) -> bool:
        self._flusher.cancel_pending()
        return self._storage.save(self._snapshot())

    def _append_one(self, entry: QuotaEntry, timestamp: int) -> None:
        samples = self._data.setdefault(entry.id, [])
        limit = entry.limit if entry.limit is not None and entry.limit > 0 else None
        if samples and limit is not None and self._is_reset(samples[-1].used, entry.used, limit):
            logger.debug(
                "Quota reset detected quota_id=%s previous_used=%s used=%s",
                entry.id,
                samples[-1].used,
                entry.used,
            )
            samples.clear()
        if samples and timestamp < samples[-1].timestamp:
            timestamp = samples[-1].timestamp
        samples.append(QuotaSample(timestamp=timestamp, used=entry.used, limit=entry.limit))

        cutoff = timestamp - self._max_age_ms
        if samples[0].timestamp < cutoff:
            self._data[entry.id] = [sample for sample in samples if sample.timestamp >= cutoff]

    def _is_reset(self, previous_used: float, used: float, limit: float) -> bool:
        drop = previous_used - used
        required = self._reset_threshold * limit
        return drop >= required or math.isclose(drop, required, rel_tol=1e-9, abs_tol=1e-9)

    def _snapshot(self) -> HistoryData:
        return {quota_id: list(samples) for quota_id, samples in self._data.items()}

    async def _write(self) -> None:
        snapshot = self._snapshot()
        async with self._write_lock:
            await anyio.to_thread.run_sync(self._storage.save, snapshot)


def _is_positive(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )
