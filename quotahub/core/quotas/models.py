from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from quotahub.core.quotas.types import AggregationStrategy

HISTORY_FORMAT_VERSION = 1


class AggregationGroup(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    sources: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    provider_filter: str | None = Field(
        default=None,
        validation_alias=AliasChoices("providerFilter", "providerId", "provider_filter", "provider_id"),
    )
    strategy: AggregationStrategy = AggregationStrategy.MOST_CRITICAL
    prediction_window_minutes: float | None = Field(default=None, gt=0)
    prediction_short_window_minutes: float | None = Field(default=None, gt=0)

    @field_validator("sources", "patterns", mode="before")
    @classmethod
    def _normalize_string_list(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise TypeError("must be a list of strings")
        return tuple(entry.strip() for entry in value if isinstance(entry, str) and entry.strip())

    @field_validator("provider_filter", mode="before")
    @classmethod
    def _blank_provider_filter(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: object) -> object:
        if value is None:
            return AggregationStrategy.MOST_CRITICAL
        if isinstance(value, str):
            return value.strip().lower()
        return value


class QuotaEntryPayload(BaseModel):
    """Loose shape of a provider-reported quota before normalization."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    provider_name: str = Field(min_length=1)
    used: object = 0
    limit: object = None
    unit: object = ""
    reset: object = None
    window: object = None
    info: object = None
    details: object = None
    predicted_reset: object = None


class HistoryPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: int
    used: float
    limit: float | None = None


class HistoryFilePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: int = HISTORY_FORMAT_VERSION
    data: dict[str, list[HistoryPoint]] = Field(default_factory=dict)
