from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from quotahub.core.types import JsonObject


class AggregationStrategy(str, Enum):
    MAX = "max"
    MIN = "min"
    MEAN = "mean"
    MEDIAN = "median"
    MOST_CRITICAL = "most_critical"


@dataclass(frozen=True, slots=True)
class QuotaSample:
    timestamp: int
    used: float
    limit: float | None


@dataclass(frozen=True, slots=True)
class QuotaEntry:
    id: str
    provider_name: str
    used: float
    limit: float | None
    unit: str = ""
    reset: str | None = None
    window: str | None = None
    info: str | None = None
    details: str | None = None
    predicted_reset: str | None = None

    @property
    def is_unlimited(self) -> bool:
        return self.limit is None or self.limit <= 0

    def to_dict(self) -> JsonObject:
        payload: JsonObject = {
            "id": self.id,
            "providerName": self.provider_name,
            "used": self.used,
            "limit": self.limit,
            "unit": self.unit,
        }
        optional = {
            "reset": self.reset,
            "window": self.window,
            "info": self.info,
            "details": self.details,
            "predictedReset": self.predicted_reset,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(frozen=True, slots=True)
class QuotaSnapshot:
    data: tuple[QuotaEntry, ...] = ()
    fetched_at: datetime | None = None
    last_error: BaseException | None = field(default=None, compare=False)


@dataclass(frozen=True, slots=True)
class PredictionContext:
    window_info: str | None = None


@dataclass(frozen=True, slots=True)
class ModelContext:
    provider_id: str | None = None
    model_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.provider_id) and bool(self.model_id)
