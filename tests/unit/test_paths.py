from __future__ import annotations

from pathlib import Path

import pytest

import quotahub.core.utils.paths as paths_module
from quotahub.core.utils.paths import data_directory, default_history_file

pytestmark = pytest.mark.unit


def test_linux_uses_xdg_data_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(paths_module.sys, "platform", "linux")
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))

    assert default_history_file() == tmp_path / "xdg" / "quotahub" / "quota-history.json"


def test_linux_falls_back_to_local_share(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(paths_module.sys, "platform", "linux")
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)

    assert data_directory() == tmp_path / "home" / ".local" / "share" / "quotahub"


def test_darwin_uses_application_support(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(paths_module.sys, "platform", "darwin")

    assert data_directory() == tmp_path / "home" / "Library" / "Application Support" / "quotahub"
