from __future__ import annotations

import math

import pytest

from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.quotas.types import AggregationStrategy, PredictionContext, QuotaEntry
from quotahub.modules.aggregation.service import AggregationService, round_half_up, usage_ratio

pytestmark = pytest.mark.unit

MINUTE_MS = 60 * 1000


def _entry(quota_id: str, used: float, limit: float | None = 100, window: str | None = None) -> QuotaEntry:
    return QuotaEntry(id=quota_id, provider_name=f"Provider {quota_id}", used=used, limit=limit, window=window)


class _StubEngine:
    def __init__(self, predictions: dict[str, float] | None = None) -> None:
        self.predictions = predictions or {}
        self.calls: list[tuple[str, float, float | None, PredictionContext | None]] = []

    def predict_time_to_limit(
        self,
        quota_id: str,
        window_minutes: float = 60,
        short_window_minutes: float | None = None,
        context: PredictionContext | None = None,
    ) -> float:
        self.calls.append((quota_id, window_minutes, short_window_minutes, context))
        return self.predictions.get(quota_id, math.inf)


def test_usage_ratio_treats_unlimited_as_zero() -> None:
    assert usage_ratio(_entry("a", 25)) == 0.25
    assert usage_ratio(_entry("b", 25, None)) == 0
    assert usage_ratio(_entry("c", 25, 0)) == 0


def test_max_and_min_pick_by_ratio() -> None:
    service = AggregationService(_StubEngine())
    quotas = [_entry("low", 10), _entry("high", 80), _entry("mid", 50)]

    assert service.aggregate_max(quotas).id == "high"
    assert service.aggregate_min(quotas).id == "low"


def test_max_and_min_ties_prefer_later_entries() -> None:
    service = AggregationService(_StubEngine())
    quotas = [_entry("first", 50), _entry("second", 50)]

    assert service.aggregate_max(quotas).id == "second"
    assert service.aggregate_min(quotas).id == "second"


def test_max_on_empty_input_raises() -> None:
    service = AggregationService(_StubEngine())

    with pytest.raises(ValueError):
        service.aggregate_max([])


def test_mean_and_median_synthesize_percent_entries() -> None:
    service = AggregationService(_StubEngine())
    quotas = [_entry("a", 10), _entry("b", 80), _entry("c", 50)]

    mean = service.aggregate_average(quotas, "Average", "avg", AggregationStrategy.MEAN)
    median = service.aggregate_average(quotas, "Median", "med", "median")

    assert (mean.id, mean.provider_name, mean.used, mean.limit, mean.unit, mean.info) == (
        "avg",
        "Average",
        47,
        100,
        "%",
        "Aggregated",
    )
    assert median.used == 50


def test_median_of_even_count_uses_upper_middle() -> None:
    service = AggregationService(_StubEngine())
    quotas = [_entry("a", 10), _entry("b", 20), _entry("c", 30), _entry("d", 40)]

    assert service.aggregate_average(quotas, "Median", "med", "median").used == 30


def test_round_half_up() -> None:
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(46.666) == 47


def test_most_critical_picks_shortest_prediction() -> None:
    engine = _StubEngine({"primary": 30 * MINUTE_MS, "secondary": 5 * MINUTE_MS})
    service = AggregationService(engine)
    quotas = [_entry("primary", 90, window="5h window"), _entry("secondary", 10, window="weekly")]

    result = service.aggregate_most_critical(quotas, 120, 10)

    assert result is not None
    assert result.id == "secondary"
    assert result.predicted_reset == "in 5m (predicted)"
    assert quotas[1].predicted_reset is None
    assert [call[3] for call in engine.calls] == [
        PredictionContext(window_info="5h window"),
        PredictionContext(window_info="weekly"),
    ]
    assert {(call[1], call[2]) for call in engine.calls} == {(120, 10)}


def test_most_critical_without_predictions_falls_back_to_max() -> None:
    service = AggregationService(_StubEngine())
    quotas = [_entry("a", 20), _entry("b", 70)]

    result = service.aggregate_most_critical(quotas)

    assert result is quotas[1]
    assert result.predicted_reset is None


def test_most_critical_on_empty_input_is_none() -> None:
    assert AggregationService(_StubEngine()).aggregate_most_critical([]) is None


def test_aggregate_dispatches_on_group_strategy() -> None:
    engine = _StubEngine({"a": 3 * MINUTE_MS})
    service = AggregationService(engine, default_window_minutes=45, default_short_window_minutes=3)
    quotas = [_entry("a", 10), _entry("b", 90)]

    assert service.aggregate(quotas, AggregationGroup(id="g", name="G", strategy="max")).id == "b"
    assert service.aggregate(quotas, AggregationGroup(id="g", name="G", strategy="min")).id == "a"
    assert service.aggregate(quotas, AggregationGroup(id="g", name="G", strategy="mean")).used == 50

    critical = service.aggregate(quotas, AggregationGroup(id="g", name="G"))
    assert critical is not None and critical.id == "a"
    assert engine.calls[-1][1:3] == (45, 3)

    service.aggregate(quotas, AggregationGroup(id="g", name="G", predictionWindowMinutes=15))
    assert engine.calls[-1][1:3] == (15, 3)
