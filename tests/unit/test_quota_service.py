from __future__ import annotations

import math

import pytest

from quotahub.core.config.settings import Settings
from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.quotas.types import ModelContext, PredictionContext, QuotaEntry
from quotahub.modules.aggregation.service import AggregationService
from quotahub.modules.quotas.service import QuotaService, filter_by_model, model_tokens

pytestmark = pytest.mark.unit

MINUTE_MS = 60 * 1000


class _StubEngine:
    def __init__(self, predictions: dict[str, float] | None = None) -> None:
        self.predictions = predictions or {}

    def predict_time_to_limit(
        self,
        quota_id: str,
        window_minutes: float = 60,
        short_window_minutes: float | None = None,
        context: PredictionContext | None = None,
    ) -> float:
        return self.predictions.get(quota_id, math.inf)


def _entry(quota_id: str, provider_name: str, used: float = 10, limit: float | None = 100) -> QuotaEntry:
    return QuotaEntry(id=quota_id, provider_name=provider_name, used=used, limit=limit)


def _service(predictions: dict[str, float] | None = None, **overrides) -> QuotaService:
    settings = Settings(**overrides)
    engine = _StubEngine(predictions)
    return QuotaService(settings, prediction_engine=engine, aggregation=AggregationService(engine))


ENTRIES = [
    _entry("codex-primary", "Codex", used=20),
    _entry("codex-secondary", "Codex", used=60),
    _entry("ag-gemini-flash", "Antigravity"),
    _entry("ag-gemini-pro", "Antigravity"),
    _entry("gh-premium", "GitHub Copilot"),
]


def test_default_group_replaces_codex_sources() -> None:
    result = _service().process_quotas(ENTRIES)

    assert [entry.id for entry in result] == ["ag-gemini-flash", "ag-gemini-pro", "codex-smart", "gh-premium"]
    smart = result[2]
    assert smart.provider_name == "Codex Usage"
    assert smart.used == 60


def test_predictions_are_attached_to_entries() -> None:
    result = _service({"gh-premium": 5 * MINUTE_MS}).process_quotas(ENTRIES)
    by_id = {entry.id: entry for entry in result}

    assert by_id["gh-premium"].predicted_reset == "in 5m (predicted)"
    assert by_id["ag-gemini-pro"].predicted_reset is None
    assert ENTRIES[4].predicted_reset is None


def test_most_critical_group_uses_prediction() -> None:
    result = _service({"codex-primary": 10 * MINUTE_MS, "codex-secondary": 50 * MINUTE_MS}).process_quotas(ENTRIES)
    smart = next(entry for entry in result if entry.id == "codex-smart")

    assert smart.used == 20
    assert smart.predicted_reset == "in 10m (predicted)"


def test_hide_unaggregated_entries() -> None:
    groups = [
        AggregationGroup(id="flash", name="Flash", patterns=["flash"]),
        AggregationGroup(id="gemini", name="Gemini", patterns=["gemini"], strategy="mean"),
    ]
    result = _service(aggregated_groups=groups, show_unaggregated=False).process_quotas(ENTRIES)

    assert [(entry.id, entry.provider_name) for entry in result] == [("flash", "Flash"), ("gemini", "Gemini")]


def test_disabled_ids_are_removed_after_aggregation() -> None:
    result = _service(disabled=["codex-smart", "gh-premium"]).process_quotas(ENTRIES)

    assert [entry.id for entry in result] == ["ag-gemini-flash", "ag-gemini-pro"]


def test_model_filter_keeps_best_scoring_entries() -> None:
    service = _service(filter_by_current_model=True, aggregated_groups=[])
    context = ModelContext(provider_id="antigravity", model_id="gemini-flash")

    assert [entry.id for entry in service.process_quotas(ENTRIES, context)] == ["ag-gemini-flash"]


def test_model_filter_ignored_without_flag_or_full_context() -> None:
    assert len(_service(aggregated_groups=[]).process_quotas(ENTRIES, ModelContext("codex", "gpt-5"))) == 5
    service = _service(filter_by_current_model=True, aggregated_groups=[])
    assert len(service.process_quotas(ENTRIES, ModelContext(provider_id="codex"))) == 5


def test_filter_by_model_falls_back_to_provider_then_empty() -> None:
    by_provider = filter_by_model(ENTRIES, ModelContext(provider_id="github", model_id="o9"))
    assert [entry.id for entry in by_provider] == ["gh-premium"]

    assert filter_by_model(ENTRIES, ModelContext(provider_id="mistral", model_id="large")) == []


def test_filter_by_model_keeps_ties() -> None:
    result = filter_by_model(ENTRIES, ModelContext(provider_id="antigravity", model_id="gemini"))

    assert [entry.id for entry in result] == ["ag-gemini-flash", "ag-gemini-pro"]


def test_model_tokens() -> None:
    assert model_tokens("Claude-3.5_Sonnet") == ["claude", "3", "5", "sonnet"]


def test_sort_is_stable_by_provider_name() -> None:
    entries = [_entry("b", "Same"), _entry("a", "Same"), _entry("c", "Alpha")]

    result = _service(aggregated_groups=[]).process_quotas(entries)

    assert [entry.id for entry in result] == ["c", "b", "a"]


@pytest.mark.asyncio
async def test_get_quotas_without_cache_is_empty() -> None:
    assert await _service().get_quotas() == []
