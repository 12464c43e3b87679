from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import replace

from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.quotas.types import AggregationStrategy, PredictionContext, QuotaEntry
from quotahub.core.utils.time import format_duration_ms
from quotahub.modules.prediction.engine import DEFAULT_WINDOW_MINUTES, PredictionEngine

logger = logging.getLogger(__name__)

AGGREGATED_INFO = "Aggregated"
PERCENT_UNIT = "%"


def usage_ratio(entry: QuotaEntry) -> float:
    if entry.limit is None or entry.limit <= 0:
        return 0.0
    return entry.used / entry.limit


def predicted_reset_label(ms: float) -> str:
    return f"in {format_duration_ms(ms)} (predicted)"


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class AggregationService:
    """Pick or synthesize one representative entry for a group of quotas."""

    def __init__(
        self,
        prediction_engine: PredictionEngine,
        *,
        default_window_minutes: float = DEFAULT_WINDOW_MINUTES,
        default_short_window_minutes: float | None = None,
    ) -> None:
        self._engine = prediction_engine
        self._default_window_minutes = default_window_minutes
        self._default_short_window_minutes = default_short_window_minutes

    def aggregate(self, quotas: Sequence[QuotaEntry], group: AggregationGroup) -> QuotaEntry | None:
        if not quotas:
            return None
        match group.strategy:
            case AggregationStrategy.MAX:
                return self.aggregate_max(quotas)
            case AggregationStrategy.MIN:
                return self.aggregate_min(quotas)
            case AggregationStrategy.MEAN | AggregationStrategy.MEDIAN:
                return self.aggregate_average(quotas, group.name, group.id, group.strategy)
            case _:
                window = group.prediction_window_minutes or self._default_window_minutes
                short_window = group.prediction_short_window_minutes or self._default_short_window_minutes
                return self.aggregate_most_critical(quotas, window, short_window)

    def aggregate_max(self, quotas: Sequence[QuotaEntry]) -> QuotaEntry:
        if not quotas:
            raise ValueError("aggregate_max requires at least one quota")
        best = quotas[0]
        for entry in quotas[1:]:
            if not usage_ratio(best) > usage_ratio(entry):
                best = entry
        return best

    def aggregate_min(self, quotas: Sequence[QuotaEntry]) -> QuotaEntry:
        if not quotas:
            raise ValueError("aggregate_min requires at least one quota")
        best = quotas[0]
        for entry in quotas[1:]:
            if not usage_ratio(best) < usage_ratio(entry):
                best = entry
        return best

    def aggregate_average(
        self,
        quotas: Sequence[QuotaEntry],
        name: str,
        id: str,
        strategy: AggregationStrategy | str,
    ) -> QuotaEntry:
        if not quotas:
            raise ValueError("aggregate_average requires at least one quota")
        ratios = [usage_ratio(entry) for entry in quotas]
        if AggregationStrategy(strategy) == AggregationStrategy.MEAN:
            ratio = sum(ratios) / len(ratios)
        else:
            ratios.sort()
            ratio = ratios[len(ratios) // 2]
        return QuotaEntry(
            id=id,
            provider_name=name,
            used=round_half_up(ratio * 100),
            limit=100,
            unit=PERCENT_UNIT,
            info=AGGREGATED_INFO,
        )

    def aggregate_most_critical(
        self,
        quotas: Sequence[QuotaEntry],
        window_minutes: float = DEFAULT_WINDOW_MINUTES,
        short_window_minutes: float | None = None,
    ) -> QuotaEntry | None:
        if not quotas:
            return None

        shortest = math.inf
        representative: QuotaEntry | None = None
        for entry in quotas:
            predicted = self._engine.predict_time_to_limit(
                entry.id,
                window_minutes,
                short_window_minutes,
                PredictionContext(window_info=entry.window),
            )
            if predicted < shortest:
                shortest = predicted
                representative = entry

        if representative is None:
            logger.debug("No finite prediction, falling back to max usage quotas=%d", len(quotas))
            return self.aggregate_max(quotas)
        return replace(representative, predicted_reset=predicted_reset_label(shortest))
