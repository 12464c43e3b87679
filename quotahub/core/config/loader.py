from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from quotahub.core.config.settings import Settings
from quotahub.core.quotas.models import AggregationGroup
from quotahub.core.types import JsonObject

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "QUOTAHUB_CONFIG_PATH"
CONFIG_DIR_NAME = ".quotahub"
CONFIG_FILE_NAME = "quotas.json"

# keys whose snake_case form is not the settings field name
_KEY_RENAMES = {
    "polling_interval": "polling_interval_ms",
    "prediction_window": "prediction_window_minutes",
    "reset_threshold": "history_reset_threshold",
}


def candidate_config_paths(directory: str | Path | None = None) -> list[Path]:
    paths: list[Path] = []
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        paths.append(Path(env_path).expanduser())
    if directory is not None:
        paths.append(Path(directory) / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    paths.append(Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    return paths


def read_user_config(directory: str | Path | None = None) -> JsonObject:
    for path in candidate_config_paths(directory):
        if not path.is_file():
            logger.debug("Config file not found path=%s", path)
            continue
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Config parse failed path=%s error=%s", path, exc)
            continue
        except OSError as exc:
            logger.warning("Config read failed path=%s error=%s", path, exc)
            continue
        if not isinstance(raw, dict):
            logger.warning("Config ignored path=%s reason=not_an_object", path)
            continue
        logger.debug("Config loaded path=%s", path)
        return raw
    return {}


def normalize_config_keys(raw: JsonObject) -> dict[str, object]:
    normalized: dict[str, object] = {}
    for key, value in raw.items():
        name = to_snake(key)
        normalized[_KEY_RENAMES.get(name, name)] = value
    return normalized


def load_settings(directory: str | Path | None = None) -> Settings:
    overrides = normalize_config_keys(read_user_config(directory))
    known = set(Settings.model_fields)
    overrides = {key: value for key, value in overrides.items() if key in known}
    if "aggregated_groups" in overrides:
        groups = _valid_groups(overrides.pop("aggregated_groups"))
        if groups is not None:
            overrides["aggregated_groups"] = groups

    defaulted: set[str] = set()
    while True:
        try:
            return Settings(**overrides)
        except ValidationError as exc:
            invalid = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
            dropped = invalid & (overrides.keys() - defaulted)
            for key in sorted(dropped):
                logger.warning("Invalid config value dropped key=%s", key)
                overrides.pop(key)
            # remaining failures come from the environment, pin them to defaults
            from_env = invalid - dropped - defaulted
            if not dropped and not from_env:
                raise
            for key in sorted(from_env & known):
                default = Settings.model_fields[key].get_default(call_default_factory=True)
                logger.warning("Invalid environment value ignored key=%s default=%r", key, default)
                overrides[key] = default
                defaulted.add(key)


def _valid_groups(raw: object) -> list[AggregationGroup] | None:
    if not isinstance(raw, list):
        logger.warning("Invalid config value dropped key=aggregated_groups reason=not_a_list")
        return None
    groups: list[AggregationGroup] = []
    for index, item in enumerate(raw):
        try:
            groups.append(AggregationGroup.model_validate(item))
        except ValidationError as exc:
            logger.warning("Invalid aggregation group dropped index=%d errors=%d", index, exc.error_count())
    return groups
