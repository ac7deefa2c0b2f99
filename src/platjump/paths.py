from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "platjump"
DATA_DIR_ENV = "PLATJUMP_DATA_DIR"
CONFIG_ENV = "PLATJUMP_CONFIG"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def default_data_dir() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path(_dirs().user_data_path).resolve()


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path(_dirs().user_config_path) / "config.toml"
