"""
Time-to-limit prediction over recorded quota history.

The linear regression engine fits two slopes: one over the full prediction
window to capture the trend, and one over the most recent few minutes to
catch bursts. The larger of the two wins, so a spike shortens the estimate
instead of being averaged away. Quotas with week-, month- or day-scale windows
skip the short slope; a burst there says little about exhaustion.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from typing import Protocol

from quotahub.core.quotas.types import PredictionContext, QuotaSample
from quotahub.core.utils.time import minutes_to_ms, now_ms

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 60
DEFAULT_SHORT_WINDOW_MINUTES = 5
DEFAULT_IDLE_TIMEOUT_MS = 5 * 60 * 1000
SHORT_WINDOW_FALLBACK_FRACTION = 0.15

_LONG_TERM_PATTERNS = (
    re.compile(r"\bweek(ly|s)?\b", re.IGNORECASE),
    re.compile(r"\bmonth(ly|s)?\b", re.IGNORECASE),
    re.compile(r"\b\d+\s*-?\s*days?\b", re.IGNORECASE),
    re.compile(r"\b\d+\s*d\b", re.IGNORECASE),
    re.compile(r"\b(daily|day)\b", re.IGNORECASE),
)
_HOUR_WINDOW = re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:h|hr|hrs|hours?)\b", re.IGNORECASE)


class HistorySource(Protocol):
    def get_history(self, quota_id: str, window_ms: float, *, now: int | None = None) -> list[QuotaSample]: ...


class PredictionEngine(Protocol):
    def predict_time_to_limit(
        self,
        quota_id: str,
        window_minutes: float = DEFAULT_WINDOW_MINUTES,
        short_window_minutes: float | None = None,
        context: PredictionContext | None = None,
    ) -> float: ...


def is_long_term_window(window_info: str | None) -> bool:
    if not window_info:
        return False
    if any(pattern.search(window_info) for pattern in _LONG_TERM_PATTERNS):
        return True
    match = _HOUR_WINDOW.search(window_info)
    return match is not None and float(match.group(1)) >= 24


def calculate_slope(samples: Sequence[QuotaSample]) -> float:
    """Ordinary least squares slope of ``used`` per millisecond."""
    n = len(samples)
    if n < 2:
        return 0.0

    first_timestamp = samples[0].timestamp
    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for sample in samples:
        x = float(sample.timestamp - first_timestamp)
        y = sample.used
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_x2 += x * x

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


class LinearRegressionPredictionEngine:
    def __init__(
        self,
        history: HistorySource,
        *,
        short_window_minutes: float = DEFAULT_SHORT_WINDOW_MINUTES,
        idle_timeout_ms: float = DEFAULT_IDLE_TIMEOUT_MS,
    ) -> None:
        self._history = history
        self._short_window_minutes = short_window_minutes
        self._idle_timeout_ms = idle_timeout_ms

    def predict_time_to_limit(
        self,
        quota_id: str,
        window_minutes: float = DEFAULT_WINDOW_MINUTES,
        short_window_minutes: float | None = None,
        context: PredictionContext | None = None,
    ) -> float:
        now = now_ms()
        samples = self._history.get_history(quota_id, minutes_to_ms(window_minutes), now=now)
        if len(samples) < 2:
            return math.inf

        last = samples[-1]
        if now - last.timestamp > self._idle_timeout_ms:
            return math.inf

        slope = calculate_slope(samples)
        window_info = context.window_info if context is not None else None
        if not is_long_term_window(window_info):
            short_minutes = short_window_minutes if short_window_minutes is not None else self._short_window_minutes
            slope = max(slope, calculate_slope(_short_window(samples, now, minutes_to_ms(short_minutes))))

        if slope <= 0:
            return math.inf
        if last.limit is None or last.limit <= 0:
            return math.inf

        remaining = last.limit - last.used
        if remaining <= 0:
            return 0.0
        return max(0.0, remaining / slope - (now - last.timestamp))


class NullPredictionEngine:
    def predict_time_to_limit(
        self,
        quota_id: str,
        window_minutes: float = DEFAULT_WINDOW_MINUTES,
        short_window_minutes: float | None = None,
        context: PredictionContext | None = None,
    ) -> float:
        return math.inf


def _short_window(samples: list[QuotaSample], now: int, short_window_ms: float) -> list[QuotaSample]:
    recent = [sample for sample in samples if sample.timestamp > now - short_window_ms]
    if len(recent) >= 2:
        return recent
    count = max(2, math.ceil(len(samples) * SHORT_WINDOW_FALLBACK_FRACTION))
    return samples[-count:]
