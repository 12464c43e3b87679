from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from pathlib import Path

from quotahub.context import build_history_store
from quotahub.core.config.loader import load_settings
from quotahub.core.config.settings import Settings
from quotahub.core.types import JsonObject
from quotahub.core.utils.time import format_duration_ms, minutes_to_ms
from quotahub.modules.prediction.engine import LinearRegressionPredictionEngine


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="quotahub", description="Inspect and maintain quota history.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: WARNING, DEBUG with debug=true).")
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Project directory holding .quotahub/quotas.json.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    history = subparsers.add_parser("history", help="Print recorded history and predictions as JSON.")
    history.add_argument("--window-minutes", type=float, default=None)
    history.add_argument("--file", type=Path, default=None, help="History file to read.")

    prune = subparsers.add_parser("prune", help="Drop samples older than the configured max age.")
    prune.add_argument("--file", type=Path, default=None, help="History file to prune.")

    return parser.parse_args(argv)


def _configure_logging(level: str | None, settings: Settings) -> None:
    if level is None:
        level = "DEBUG" if settings.debug else "WARNING"
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _with_history_file(settings: Settings, path: Path | None) -> Settings:
    if path is None:
        return settings
    return settings.model_copy(update={"history_file": path.expanduser()})


async def _history_summary(settings: Settings, window_minutes: float | None) -> JsonObject:
    store = build_history_store(settings)
    await store.load()
    engine = LinearRegressionPredictionEngine(
        store,
        short_window_minutes=settings.prediction_short_window_minutes,
        idle_timeout_ms=minutes_to_ms(settings.prediction_idle_timeout_minutes),
    )
    window = window_minutes or settings.prediction_window_minutes

    summary: JsonObject = {}
    for quota_id in sorted(store.quota_ids()):
        samples = store.get_history(quota_id, store.max_age_ms)
        last = samples[-1] if samples else None
        predicted = engine.predict_time_to_limit(quota_id, window)
        summary[quota_id] = {
            "samples": len(samples),
            "lastUsed": last.used if last else None,
            "lastLimit": last.limit if last else None,
            "lastTimestamp": last.timestamp if last else None,
            "predictedMs": predicted if math.isfinite(predicted) else None,
            "predicted": format_duration_ms(predicted),
        }
    return summary


async def _prune(settings: Settings) -> int:
    store = build_history_store(settings)
    await store.load()
    removed = await store.prune_all()
    await store.flush()
    return removed


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = load_settings(args.config_dir)
    _configure_logging(args.log_level, settings)
    settings = _with_history_file(settings, args.file)

    if args.command == "history":
        summary = asyncio.run(_history_summary(settings, args.window_minutes))
        print(json.dumps(summary, indent=2))
    elif args.command == "prune":
        removed = asyncio.run(_prune(settings))
        print(json.dumps({"file": str(settings.history_file), "removed": removed}))


if __name__ == "__main__":
    main()
