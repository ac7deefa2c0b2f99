from __future__ import annotations

import datetime as dt
import os
from pathlib import Path
from threading import Lock


def _format_value(value: object) -> str:
    text = str(value)
    return text.replace("\n", "\\n")


def _format_fields(fields: dict[str, object]) -> str:
    parts: list[str] = []
    for key in sorted(fields):
        parts.append(f"{key}={_format_value(fields[key])}")
    return " ".join(parts)


def format_line(event: str, fields: dict[str, object], *, now: dt.datetime | None = None) -> str:
    timestamp = (now or dt.datetime.now(dt.timezone.utc)).isoformat(timespec="milliseconds")
    payload = _format_fields(fields)
    line = f"{timestamp} event={str(event).strip()}"
    if payload:
        line += f" {payload}"
    return line + "\n"


class AuditLog:
    """Append-only `key=value` trail of session and submission decisions.

    Rejection details (observed ticks, elapsed time, claimed scores) go here,
    never to clients. With no path the log is disabled and writes are no-ops.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._lock = Lock()
        self._path: Path | None = None
        if path is not None:
            self.open(path)

    @property
    def path(self) -> Path | None:
        with self._lock:
            return self._path

    def open(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._path = path
        self.log("audit_open", pid=int(os.getpid()))
        return path

    def log(self, event: str, **fields: object) -> None:
        line = format_line(event, fields)
        with self._lock:
            path = self._path
            if path is None:
                return
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)

    def close(self) -> None:
        with self._lock:
            self._path = None


__all__ = [
    "AuditLog",
    "format_line",
]
