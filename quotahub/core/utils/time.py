from __future__ import annotations

import math
import time
from datetime import datetime, timezone

_MS_PER_MINUTE = 60 * 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_ms() -> int:
    return int(time.time() * 1000)


def minutes_to_ms(minutes: float) -> float:
    return minutes * _MS_PER_MINUTE


def hours_to_ms(hours: float) -> float:
    return hours * 60 * _MS_PER_MINUTE


def format_duration_ms(ms: float) -> str:
    if ms <= 0:
        return "now"
    if math.isinf(ms):
        return "never"

    total_minutes = math.floor(ms / _MS_PER_MINUTE)
    hours = total_minutes // 60
    days = hours // 24
    remaining_hours = hours % 24
    remaining_minutes = total_minutes % 60

    if days > 0:
        return f"{days}d {remaining_hours}h"
    if hours > 0:
        return f"{hours}h {remaining_minutes}m"
    if total_minutes > 0:
        return f"{total_minutes}m"
    return "less than 1m"


def format_relative_time(target: datetime, *, now: datetime | None = None) -> str:
    reference = now or datetime.now(target.tzinfo)
    diff_ms = (target - reference).total_seconds() * 1000
    if diff_ms <= 0:
        return "now"
    formatted = format_duration_ms(diff_ms)
    return "0m" if formatted == "less than 1m" else formatted
