"""
JSON persistence for quota history.

On-disk shape::

    {"version": 1, "data": {"<quota id>": [{"timestamp": 0, "used": 0, "limit": 100}]}}

Files written before versioning held the bare ``data`` map and are read as a
legacy format.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TypeAlias

from pydantic import ValidationError

from quotahub.core.exceptions import HistoryFormatError
from quotahub.core.quotas.models import HISTORY_FORMAT_VERSION, HistoryFilePayload, HistoryPoint
from quotahub.core.quotas.types import QuotaSample

logger = logging.getLogger(__name__)

HistoryData: TypeAlias = dict[str, list[QuotaSample]]


class HistoryLoadStatus(str, Enum):
    MISSING = "missing"
    LOADED = "loaded"
    MIGRATED = "migrated"
    UNSUPPORTED_VERSION = "unsupported_version"


@dataclass(frozen=True, slots=True)
class HistoryLoadResult:
    data: HistoryData
    status: HistoryLoadStatus
    version: object = None


class HistoryFileStorage:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> HistoryLoadResult:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("History directory create failed path=%s error=%s", self._path.parent, exc)

        if not self._path.exists():
            return HistoryLoadResult(data={}, status=HistoryLoadStatus.MISSING)

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise HistoryFormatError(f"History read failed: {exc}") from exc
        if not raw.strip():
            return HistoryLoadResult(data={}, status=HistoryLoadStatus.MISSING)

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise HistoryFormatError(f"History is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise HistoryFormatError("History root must be an object")

        version = _read_version(parsed)
        if version is _LEGACY:
            return HistoryLoadResult(data=parse_series(parsed), status=HistoryLoadStatus.MIGRATED)

        data = parsed.get("data")
        series = parse_series(data if isinstance(data, dict) else {})
        if not _is_current_version(version):
            return HistoryLoadResult(data=series, status=HistoryLoadStatus.UNSUPPORTED_VERSION, version=version)
        return HistoryLoadResult(data=series, status=HistoryLoadStatus.LOADED, version=version)

    def save(self, data: HistoryData) -> bool:
        payload = HistoryFilePayload(
            data={
                quota_id: [
                    HistoryPoint(timestamp=sample.timestamp, used=sample.used, limit=sample.limit)
                    for sample in samples
                ]
                for quota_id, samples in data.items()
            }
        ).model_dump(mode="json")
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self._path)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("History save failed path=%s error=%s", self._path, exc)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return False
        logger.debug("History saved path=%s quotas=%d", self._path, len(data))
        return True


def parse_series(raw: dict[str, object]) -> HistoryData:
    data: HistoryData = {}
    for quota_id, points in raw.items():
        if not isinstance(points, list):
            continue
        samples: list[QuotaSample] = []
        for point in points:
            try:
                parsed = HistoryPoint.model_validate(point)
            except ValidationError:
                continue
            samples.append(QuotaSample(timestamp=parsed.timestamp, used=parsed.used, limit=parsed.limit))
        samples.sort(key=lambda sample: sample.timestamp)
        data[quota_id] = samples
    return data


_LEGACY = object()


def _is_current_version(version: object) -> bool:
    return isinstance(version, int) and not isinstance(version, bool) and version == HISTORY_FORMAT_VERSION


def _read_version(parsed: dict[str, object]) -> object:
    # a list under "version" or "v" is a legacy series for a quota with that id
    for key in ("version", "v"):
        if key in parsed and not isinstance(parsed[key], list):
            return parsed[key]
    return _LEGACY
