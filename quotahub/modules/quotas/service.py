from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import replace

from quotahub.core.config.settings import Settings
from quotahub.core.quotas.types import ModelContext, PredictionContext, QuotaEntry
from quotahub.modules.aggregation.resolver import GroupResolver
from quotahub.modules.aggregation.service import AggregationService, predicted_reset_label
from quotahub.modules.prediction.engine import PredictionEngine
from quotahub.modules.quotas.refresh_cache import QuotaRefreshCache

logger = logging.getLogger(__name__)

_MODEL_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


class QuotaService:
    def __init__(
        self,
        settings: Settings,
        *,
        prediction_engine: PredictionEngine,
        aggregation: AggregationService,
        resolver: GroupResolver | None = None,
        cache: QuotaRefreshCache | None = None,
    ) -> None:
        self._settings = settings
        self._engine = prediction_engine
        self._aggregation = aggregation
        self._resolver = resolver or GroupResolver()
        self._cache = cache

    async def get_quotas(self, context: ModelContext | None = None, *, refresh: bool = False) -> list[QuotaEntry]:
        if self._cache is None:
            return []
        snapshot = self._cache.get_snapshot()
        if refresh or snapshot.fetched_at is None:
            snapshot = await self._cache.refresh()
        return self.process_quotas(snapshot.data, context)

    def process_quotas(
        self,
        entries: Sequence[QuotaEntry],
        context: ModelContext | None = None,
    ) -> list[QuotaEntry]:
        enriched = [self._with_prediction(entry) for entry in entries]

        assignments, remaining = self._resolver.resolve_all(enriched, self._settings.aggregated_groups)
        aggregated: list[QuotaEntry] = []
        for group, members in assignments:
            representative = self._aggregation.aggregate(members, group)
            if representative is None:
                continue
            aggregated.append(replace(representative, id=group.id, provider_name=group.name))

        results = remaining + aggregated if self._settings.show_unaggregated else aggregated

        disabled = set(self._settings.disabled)
        if disabled:
            results = [entry for entry in results if entry.id not in disabled]

        if self._settings.filter_by_current_model and context is not None and context.is_complete:
            results = filter_by_model(results, context)

        return sorted(results, key=lambda entry: entry.provider_name)

    def _with_prediction(self, entry: QuotaEntry) -> QuotaEntry:
        predicted = self._engine.predict_time_to_limit(
            entry.id,
            self._settings.prediction_window_minutes,
            self._settings.prediction_short_window_minutes,
            PredictionContext(window_info=entry.window),
        )
        if not math.isfinite(predicted):
            return entry
        return replace(entry, predicted_reset=predicted_reset_label(predicted))


def model_tokens(model_id: str) -> list[str]:
    return [token for token in _MODEL_TOKEN_SPLIT.split(model_id.lower()) if token]


def filter_by_model(entries: Sequence[QuotaEntry], context: ModelContext) -> list[QuotaEntry]:
    tokens = model_tokens(context.model_id or "")
    best_score = 0
    best: list[QuotaEntry] = []
    for entry in entries:
        haystack = f"{entry.id} {entry.provider_name}".lower()
        score = sum(1 for token in tokens if token in haystack)
        if score == 0:
            continue
        if score > best_score:
            best_score = score
            best = [entry]
        elif score == best_score:
            best.append(entry)
    if best:
        return best

    provider = (context.provider_id or "").lower()
    by_provider = [entry for entry in entries if provider in entry.provider_name.lower()]
    if not by_provider:
        logger.debug("No quotas match current model provider_id=%s model_id=%s", context.provider_id, context.model_id)
    return by_provider
