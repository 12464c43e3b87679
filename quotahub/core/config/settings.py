from __future__ import annotations

import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.quotas.types import AggregationStrategy
from quotahub.core.utils.paths import default_history_file
from quotahub.core.utils.validation import validate_polling_interval

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_MAX_AGE_HOURS = 24.0
DEFAULT_RESET_THRESHOLD = 0.20
DEFAULT_POLLING_INTERVAL_MS = 60_000
MIN_RECOMMENDED_POLLING_INTERVAL_MS = 10_000
MIN_POLLING_INTERVAL_MS = 1_000


def default_aggregated_groups() -> list[AggregationGroup]:
    return [
        AggregationGroup(
            id="codex-smart",
            name="Codex Usage",
            sources=("codex-primary", "codex-secondary"),
            strategy=AggregationStrategy.MOST_CRITICAL,
        )
    ]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUOTAHUB_",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    history_file: Path = Field(default_factory=default_history_file)
    history_max_age_hours: float = DEFAULT_HISTORY_MAX_AGE_HOURS
    history_reset_threshold: float = DEFAULT_RESET_THRESHOLD
    history_save_debounce_seconds: float = Field(default=5.0, ge=0)
    prediction_window_minutes: float = Field(default=60, gt=0)
    prediction_short_window_minutes: float = Field(default=5, gt=0)
    prediction_idle_timeout_minutes: float = Field(default=5, gt=0)
    polling_interval_ms: float = DEFAULT_POLLING_INTERVAL_MS
    provider_fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    aggregated_groups: list[AggregationGroup] = Field(default_factory=default_aggregated_groups)
    disabled: Annotated[list[str], NoDecode] = Field(default_factory=list)
    filter_by_current_model: bool = False
    show_unaggregated: bool = True
    debug: bool = False

    @field_validator("history_file", mode="before")
    @classmethod
    def _expand_history_file(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str) and value.strip():
            return Path(value.strip()).expanduser()
        raise TypeError("history_file must be a path")

    @field_validator("history_max_age_hours", mode="before")
    @classmethod
    def _coerce_max_age(cls, value: object) -> float:
        number = _finite_float(value)
        if number is None or number <= 0:
            logger.warning("Invalid history_max_age_hours=%r, using default=%s", value, DEFAULT_HISTORY_MAX_AGE_HOURS)
            return DEFAULT_HISTORY_MAX_AGE_HOURS
        return number

    @field_validator("history_reset_threshold", mode="before")
    @classmethod
    def _coerce_reset_threshold(cls, value: object) -> float:
        number = _finite_float(value)
        if number is None or number <= 0 or number > 100:
            logger.warning("Invalid history_reset_threshold=%r, using default=%s", value, DEFAULT_RESET_THRESHOLD)
            return DEFAULT_RESET_THRESHOLD
        return number / 100 if number > 1 else number

    @field_validator(
        "prediction_window_minutes",
        "prediction_short_window_minutes",
        "prediction_idle_timeout_minutes",
        "provider_fetch_timeout_seconds",
        mode="before",
    )
    @classmethod
    def _coerce_positive(cls, value: object, info: ValidationInfo) -> object:
        number = _finite_float(value)
        if number is None or number <= 0:
            default = cls.model_fields[info.field_name].default
            logger.warning("Invalid %s=%r, using default=%s", info.field_name, value, default)
            return default
        return number

    @field_validator("history_save_debounce_seconds", mode="before")
    @classmethod
    def _coerce_debounce(cls, value: object) -> object:
        number = _finite_float(value)
        if number is None or number < 0:
            logger.warning("Invalid history_save_debounce_seconds=%r, using default=5.0", value)
            return 5.0
        return number

    @field_validator("polling_interval_ms", mode="before")
    @classmethod
    def _coerce_polling_interval(cls, value: object) -> float:
        validated = validate_polling_interval(value)
        if validated is None:
            logger.warning("Invalid polling_interval_ms=%r, using default=%s", value, DEFAULT_POLLING_INTERVAL_MS)
            return DEFAULT_POLLING_INTERVAL_MS
        if validated < MIN_RECOMMENDED_POLLING_INTERVAL_MS:
            logger.warning("polling_interval_ms=%s below 10s is not recommended", validated)
            return max(validated, MIN_POLLING_INTERVAL_MS)
        return validated

    @field_validator("disabled", mode="before")
    @classmethod
    def _normalize_disabled(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [entry.strip() for entry in value.split(",") if entry.strip()]
        if isinstance(value, (list, tuple, set)):
            return [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]
        raise TypeError("disabled must be a list or comma-separated string")


def _finite_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
