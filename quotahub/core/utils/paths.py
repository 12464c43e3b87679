from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "quotahub"
HISTORY_FILENAME = "quota-history.json"


def data_directory() -> Path:
    home = Path.home()
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_DIR_NAME
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_DIR_NAME
    xdg_data = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data) if xdg_data else home / ".local" / "share"
    return base / APP_DIR_NAME


def default_history_file() -> Path:
    return data_directory() / HISTORY_FILENAME
