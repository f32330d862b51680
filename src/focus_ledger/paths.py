"""Helpers for locating application directories."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from platformdirs import PlatformDirs

from .config import ENV_PREFIX

APP_NAME = "FocusLedger"
APP_AUTHOR = "FocusLedger"
DATA_DIR_ENV = ENV_PREFIX + "DATA_DIR"


def get_data_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return the base directory for persistent data.

    ``FOCUS_LEDGER_DATA_DIR`` replaces the per-user platform directory when set.
    """
    env = os.environ if environ is None else environ
    override = env.get(DATA_DIR_ENV, "").strip()
    if override:
        path = Path(override).expanduser()
    else:
        dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
        path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    return get_data_dir(environ) / "ledger.sqlite3"


def get_export_path(day_key: str, environ: Optional[Mapping[str, str]] = None) -> Path:
    """Default location for a full ledger export taken on ``day_key``."""
    exports = get_data_dir(environ) / "exports"
    exports.mkdir(parents=True, exist_ok=True)
    return exports / f"focus-ledger-export-{day_key}.json"
