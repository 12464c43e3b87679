from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping, Sequence

from quotahub.core.exceptions import ProviderFetchError
from quotahub.core.quotas.types import QuotaEntry, QuotaSnapshot
from quotahub.core.utils.single_flight import SingleFlight
from quotahub.core.utils.time import utcnow
from quotahub.core.utils.validation import validate_quota_entry
from quotahub.modules.history.store import HistoryStore
from quotahub.modules.providers.registry import ProviderRegistry, QuotaProvider

logger = logging.getLogger(__name__)

_REFRESH_KEY = "quotas"


class QuotaRefreshCache:
    """Latest provider snapshot plus the background poll that keeps it fresh.

    Manual refreshes and the timer share one single-flight slot, so a
    refresh requested while one is running joins it instead of hitting
    providers again.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        *,
        history: HistoryStore | None = None,
        polling_interval_ms: float = 60_000,
        fetch_timeout_seconds: float = 30.0,
    ) -> None:
        self._providers = providers
        self._history = history
        self._interval_seconds = polling_interval_ms / 1000
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._snapshot = QuotaSnapshot()
        self._single_flight: SingleFlight[QuotaSnapshot] = SingleFlight()
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_snapshot(self) -> QuotaSnapshot:
        return self._snapshot

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if self._task:
            self._stop.set()
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        # a refresh already past the provider fetch still appends history
        await self._single_flight.drain()

    async def refresh(self) -> QuotaSnapshot:
        if self._single_flight.in_flight(_REFRESH_KEY):
            logger.debug("Quota refresh coalesced")
        return await self._single_flight.run(_REFRESH_KEY, self._refresh_once)

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _refresh_once(self) -> QuotaSnapshot:
        previous = self._snapshot
        try:
            providers = self._providers.get_all()
            results = await asyncio.gather(*(self._fetch_provider(provider) for provider in providers))
            entries = _validate_entries(raw for batch in results for raw in batch)
            if self._history is not None:
                await self._history.append(entries)
            snapshot = QuotaSnapshot(data=tuple(entries), fetched_at=utcnow())
            logger.info("Quota refresh ok providers=%d quotas=%d", len(providers), len(entries))
        except Exception as exc:
            logger.exception("Quota refresh failed")
            snapshot = QuotaSnapshot(data=previous.data, fetched_at=previous.fetched_at, last_error=exc)
        self._snapshot = snapshot
        return snapshot

    async def _fetch_provider(self, provider: QuotaProvider) -> Sequence[QuotaEntry | Mapping[str, object]]:
        logger.debug("Provider fetch start provider_id=%s", provider.id)
        try:
            result = await asyncio.wait_for(provider.fetch_quota(), timeout=self._fetch_timeout_seconds)
        except asyncio.TimeoutError:
            error = ProviderFetchError(provider.id, f"timed out after {self._fetch_timeout_seconds}s")
            logger.warning(
                "Provider fetch error provider_id=%s code=%s error=%s",
                provider.id,
                error.code,
                error.message,
            )
            return []
        except Exception as exc:
            error = ProviderFetchError(provider.id, str(exc) or type(exc).__name__)
            logger.warning(
                "Provider fetch error provider_id=%s code=%s error=%s",
                provider.id,
                error.code,
                error.message,
                exc_info=True,
            )
            return []
        if not isinstance(result, Sequence) or isinstance(result, (str, bytes)):
            logger.warning(
                "Provider fetch returned non-list provider_id=%s type=%s",
                provider.id,
                type(result).__name__,
            )
            return []
        logger.debug("Provider fetch ok provider_id=%s quotas=%d", provider.id, len(result))
        return result


def _validate_entries(raw_entries) -> list[QuotaEntry]:
    entries: list[QuotaEntry] = []
    for raw in raw_entries:
        entry = validate_quota_entry(raw)
        if entry is None:
            logger.debug("Dropping invalid quota entry raw=%r", raw)
            continue
        entries.append(entry)
    return entries
