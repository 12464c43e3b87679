from __future__ import annotations

import logging
import math
from collections.abc import Mapping

from pydantic import ValidationError

from quotahub.core.quotas.models import QuotaEntryPayload
from quotahub.core.quotas.types import QuotaEntry

logger = logging.getLogger(__name__)


def is_valid_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def clamp(value: float, minimum: float, maximum: float | None = None) -> float:
    if not math.isfinite(value):
        return minimum
    if value < minimum:
        return minimum
    if maximum is not None and value > maximum:
        return maximum
    return value


def validate_polling_interval(value: object) -> float | None:
    number = _float_or_none(value)
    if number is None or number <= 0:
        return None
    return number


def validate_quota_entry(raw: object) -> QuotaEntry | None:
    if isinstance(raw, QuotaEntry):
        candidate: object = raw.to_dict()
    else:
        candidate = raw
    if not isinstance(candidate, Mapping):
        return None
    try:
        payload = QuotaEntryPayload.model_validate(candidate)
    except ValidationError as exc:
        logger.debug("Dropping invalid quota entry errors=%s", exc.error_count())
        return None

    used = _float_or_none(payload.used)
    if used is None or used < 0:
        used = 0.0

    limit = _float_or_none(payload.limit)
    if limit is not None and limit <= 0:
        limit = None

    return QuotaEntry(
        id=payload.id,
        provider_name=payload.provider_name,
        used=used,
        limit=limit,
        unit=payload.unit if isinstance(payload.unit, str) else "",
        reset=_str_or_none(payload.reset),
        window=_str_or_none(payload.window),
        info=_str_or_none(payload.info),
        details=_str_or_none(payload.details),
        predicted_reset=_str_or_none(payload.predicted_reset),
    )


def _float_or_none(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None
