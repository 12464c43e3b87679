from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from quotahub.core.config.settings import Settings, get_settings
from quotahub.core.utils.time import minutes_to_ms
from quotahub.modules.aggregation.resolver import GroupResolver
from quotahub.modules.aggregation.service import AggregationService
from quotahub.modules.history.storage import HistoryFileStorage
from quotahub.modules.history.store import HistoryStore
from quotahub.modules.prediction.engine import LinearRegressionPredictionEngine
from quotahub.modules.providers.registry import ProviderRegistry, QuotaProvider
from quotahub.modules.quotas.refresh_cache import QuotaRefreshCache
from quotahub.modules.quotas.service import QuotaService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuotaHubContext:
    settings: Settings
    history: HistoryStore
    prediction: LinearRegressionPredictionEngine
    aggregation: AggregationService
    providers: ProviderRegistry
    cache: QuotaRefreshCache
    quotas: QuotaService


def build_history_store(settings: Settings) -> HistoryStore:
    return HistoryStore(
        HistoryFileStorage(settings.history_file),
        max_age_hours=settings.history_max_age_hours,
        reset_threshold=settings.history_reset_threshold,
        save_debounce_seconds=settings.history_save_debounce_seconds,
    )


async def build_context(
    settings: Settings | None = None,
    providers: Iterable[QuotaProvider] = (),
) -> QuotaHubContext:
    settings = settings or get_settings()
    history = build_history_store(settings)
    await history.load()

    prediction = LinearRegressionPredictionEngine(
        history,
        short_window_minutes=settings.prediction_short_window_minutes,
        idle_timeout_ms=minutes_to_ms(settings.prediction_idle_timeout_minutes),
    )
    aggregation = AggregationService(
        prediction,
        default_window_minutes=settings.prediction_window_minutes,
        default_short_window_minutes=settings.prediction_short_window_minutes,
    )
    registry = ProviderRegistry(providers)
    cache = QuotaRefreshCache(
        registry,
        history=history,
        polling_interval_ms=settings.polling_interval_ms,
        fetch_timeout_seconds=settings.provider_fetch_timeout_seconds,
    )
    quotas = QuotaService(
        settings,
        prediction_engine=prediction,
        aggregation=aggregation,
        resolver=GroupResolver(),
        cache=cache,
    )
    logger.debug(
        "Context built providers=%d groups=%d history_quotas=%d",
        len(registry),
        len(settings.aggregated_groups),
        len(history),
    )
    return QuotaHubContext(
        settings=settings,
        history=history,
        prediction=prediction,
        aggregation=aggregation,
        providers=registry,
        cache=cache,
        quotas=quotas,
    )


@asynccontextmanager
async def quotahub_lifespan(
    settings: Settings | None = None,
    providers: Iterable[QuotaProvider] = (),
) -> AsyncIterator[QuotaHubContext]:
    context = await build_context(settings, providers)
    await context.cache.start()
    try:
        yield context
    finally:
        try:
            await context.cache.stop()
        finally:
            await context.history.close()
