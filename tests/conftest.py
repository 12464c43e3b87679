from __future__ import annotations

from pathlib import Path

import pytest

from quotahub.core.config.settings import get_settings


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QUOTAHUB_HISTORY_FILE", str(tmp_path / "default-history.json"))
    monkeypatch.delenv("QUOTAHUB_CONFIG_PATH", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "quota-history.json"
