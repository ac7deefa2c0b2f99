from __future__ import annotations

import sqlite3
from contextlib import closing
from dataclasses import dataclass, replace
from pathlib import Path
from threading import Lock
from typing import Protocol


class StoreError(RuntimeError):
    """The backing store failed; callers report a generic failure."""


@dataclass(frozen=True, slots=True)
class GameSession:
    id: str
    seed: int
    created_at_ms: int
    completed: bool = False


@dataclass(frozen=True, slots=True)
class ScoreboardEntry:
    id: int
    player_name: str
    score: int
    created_at_ms: int


class ScoreStore(Protocol):
    def insert_session(self, session: GameSession) -> None: ...

    def fetch_session(self, session_id: str) -> GameSession | None: ...

    def mark_session_completed(self, session_id: str) -> bool:
        """Atomically flip `completed` false -> true; False if it was already set."""
        ...

    def insert_score(self, player_name: str, score: int, created_at_ms: int) -> ScoreboardEntry: ...

    def complete_session_and_insert_score(
        self, session_id: str, player_name: str, score: int, created_at_ms: int
    ) -> ScoreboardEntry | None:
        """Flip `completed` and append the entry as one unit.

        Returns None, writing nothing, when the session was already completed.
        If the insert fails the session stays open.
        """
        ...

    def fetch_top_scores(self, limit: int) -> list[ScoreboardEntry]: ...


class MemoryStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: dict[str, GameSession] = {}
        self._scores: list[ScoreboardEntry] = []
        self._next_score_id = 1

    def insert_session(self, session: GameSession) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise StoreError(f"duplicate session id: {session.id}")
            self._sessions[session.id] = session

    def fetch_session(self, session_id: str) -> GameSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def mark_session_completed(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.completed:
                return False
            self._sessions[session_id] = replace(session, completed=True)
            return True

    def _append_score(self, player_name: str, score: int, created_at_ms: int) -> ScoreboardEntry:
        entry = ScoreboardEntry(
            id=self._next_score_id,
            player_name=str(player_name),
            score=int(score),
            created_at_ms=int(created_at_ms),
        )
        self._next_score_id += 1
        self._scores.append(entry)
        return entry

    def insert_score(self, player_name: str, score: int, created_at_ms: int) -> ScoreboardEntry:
        with self._lock:
            return self._append_score(player_name, score, created_at_ms)

    def complete_session_and_insert_score(
        self, session_id: str, player_name: str, score: int, created_at_ms: int
    ) -> ScoreboardEntry | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.completed:
                return None
            entry = self._append_score(player_name, score, created_at_ms)
            self._sessions[session_id] = replace(session, completed=True)
            return entry

    def fetch_top_scores(self, limit: int) -> list[ScoreboardEntry]:
        with self._lock:
            ranked = sorted(self._scores, key=lambda entry: (-entry.score, entry.id))
        return ranked[: max(0, int(limit))]


_SCHEMA = """
CREATE TABLE IF NOT EXISTS game_sessions (
  id TEXT PRIMARY KEY,
  seed INTEGER NOT NULL,
  created_at_ms INTEGER NOT NULL,
  completed INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS game_scoreboard (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  player_name TEXT NOT NULL,
  score INTEGER NOT NULL,
  created_at_ms INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS game_scoreboard_score_idx ON game_scoreboard (score DESC, id ASC);
"""


class SqliteStore:
    """File-backed store; every call opens its own connection so threads can share it."""

    def __init__(self, db_path: Path, *, timeout_s: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_s = float(timeout_s)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with closing(self._connect()) as conn:
                conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot initialise {self.db_path}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout_s)
        conn.row_factory = sqlite3.Row
        return conn

    def insert_session(self, session: GameSession) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO game_sessions (id, seed, created_at_ms, completed) VALUES (?, ?, ?, ?)",
                    (str(session.id), int(session.seed), int(session.created_at_ms), 1 if session.completed else 0),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"insert_session failed: {exc}") from exc

    def fetch_session(self, session_id: str) -> GameSession | None:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT id, seed, created_at_ms, completed FROM game_sessions WHERE id = ?",
                    (str(session_id),),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"fetch_session failed: {exc}") from exc
        if row is None:
            return None
        return GameSession(
            id=str(row["id"]),
            seed=int(row["seed"]),
            created_at_ms=int(row["created_at_ms"]),
            completed=bool(row["completed"]),
        )

    def mark_session_completed(self, session_id: str) -> bool:
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute(
                    "UPDATE game_sessions SET completed = 1 WHERE id = ? AND completed = 0",
                    (str(session_id),),
                )
                return int(cur.rowcount) == 1
        except sqlite3.Error as exc:
            raise StoreError(f"mark_session_completed failed: {exc}") from exc

    def insert_score(self, player_name: str, score: int, created_at_ms: int) -> ScoreboardEntry:
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute(
                    "INSERT INTO game_scoreboard (player_name, score, created_at_ms) VALUES (?, ?, ?)",
                    (str(player_name), int(score), int(created_at_ms)),
                )
                entry_id = int(cur.lastrowid)
        except sqlite3.Error as exc:
            raise StoreError(f"insert_score failed: {exc}") from exc
        return ScoreboardEntry(id=entry_id, player_name=str(player_name), score=int(score), created_at_ms=int(created_at_ms))

    def complete_session_and_insert_score(
        self, session_id: str, player_name: str, score: int, created_at_ms: int
    ) -> ScoreboardEntry | None:
        # One transaction: a failed INSERT rolls the completed flag back.
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute(
                    "UPDATE game_sessions SET completed = 1 WHERE id = ? AND completed = 0",
                    (str(session_id),),
                )
                if int(cur.rowcount) != 1:
                    return None
                cur = conn.execute(
                    "INSERT INTO game_scoreboard (player_name, score, created_at_ms) VALUES (?, ?, ?)",
                    (str(player_name), int(score), int(created_at_ms)),
                )
                entry_id = int(cur.lastrowid)
        except sqlite3.Error as exc:
            raise StoreError(f"complete_session_and_insert_score failed: {exc}") from exc
        return ScoreboardEntry(id=entry_id, player_name=str(player_name), score=int(score), created_at_ms=int(created_at_ms))

    def fetch_top_scores(self, limit: int) -> list[ScoreboardEntry]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT id, player_name, score, created_at_ms FROM game_scoreboard "
                    "ORDER BY score DESC, id ASC LIMIT ?",
                    (max(0, int(limit)),),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"fetch_top_scores failed: {exc}") from exc
        return [
            ScoreboardEntry(
                id=int(row["id"]),
                player_name=str(row["player_name"]),
                score=int(row["score"]),
                created_at_ms=int(row["created_at_ms"]),
            )
            for row in rows
        ]
