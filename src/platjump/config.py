from __future__ import annotations

from pathlib import Path
from typing import Annotated

import msgspec

from .constants import SESSION_RATE_LIMIT_REQUESTS, SESSION_RATE_LIMIT_WINDOW_MS, TOP_SCORES_LIMIT
from .paths import default_config_path, default_data_dir

PositiveInt = Annotated[int, msgspec.Meta(gt=0)]


class ConfigError(ValueError):
    pass


class ServerConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Deployment settings. Gameplay and anti-cheat constants are not configurable."""

    database_path: str | None = None
    audit_log_path: str | None = None
    archive_dir: str | None = None
    session_rate_limit_requests: PositiveInt = SESSION_RATE_LIMIT_REQUESTS
    session_rate_limit_window_ms: PositiveInt = SESSION_RATE_LIMIT_WINDOW_MS
    top_scores_limit: PositiveInt = TOP_SCORES_LIMIT

    def resolved_database_path(self) -> Path:
        if self.database_path:
            return Path(self.database_path).expanduser()
        return default_data_dir() / "scoreboard.sqlite3"

    def resolved_audit_log_path(self) -> Path | None:
        if not self.audit_log_path:
            return None
        return Path(self.audit_log_path).expanduser()

    def resolved_archive_dir(self) -> Path | None:
        if not self.archive_dir:
            return None
        return Path(self.archive_dir).expanduser()


def parse_config(data: bytes | str) -> ServerConfig:
    try:
        return msgspec.toml.decode(data, type=ServerConfig)
    except msgspec.DecodeError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def load_config(path: Path | None = None) -> ServerConfig:
    """Load settings from TOML; a missing default file yields the defaults.

    An explicitly given path must exist.
    """

    if path is None:
        path = default_config_path()
        if not path.is_file():
            return ServerConfig()
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"config file not found: {path}")
    return parse_config(path.read_bytes())


def dump_config(config: ServerConfig) -> bytes:
    return msgspec.json.format(msgspec.json.encode(config), indent=2)
