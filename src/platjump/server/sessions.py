from __future__ import annotations

from collections.abc import Callable
import time
import uuid

from ..constants import SESSION_EXPIRY_MS
from ..rand import random_seed
from .store import GameSession, ScoreStore


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


def new_session_id() -> str:
    return str(uuid.uuid4())


class SessionManager:
    """Create and track single-use game sessions.

    A session binds a server-chosen seed to a creation timestamp; the seed is
    the only thing the client learns, and the timestamp bounds how long the
    submitted run may claim to have lasted.
    """

    def __init__(
        self,
        store: ScoreStore,
        *,
        now_ms: Callable[[], int] = wall_clock_ms,
        seed_source: Callable[[], int] = random_seed,
        id_factory: Callable[[], str] = new_session_id,
        expiry_ms: int = SESSION_EXPIRY_MS,
    ) -> None:
        self.store = store
        self.expiry_ms = int(expiry_ms)
        self._now_ms = now_ms
        self._seed_source = seed_source
        self._id_factory = id_factory

    def now_ms(self) -> int:
        return int(self._now_ms())

    def create(self) -> GameSession:
        session = GameSession(
            id=str(self._id_factory()),
            seed=int(self._seed_source()),
            created_at_ms=self.now_ms(),
            completed=False,
        )
        self.store.insert_session(session)
        return session

    def load(self, session_id: str) -> GameSession | None:
        if not session_id:
            return None
        return self.store.fetch_session(session_id)

    def elapsed_ms(self, session: GameSession, now_ms: int | None = None) -> int:
        now = self.now_ms() if now_ms is None else int(now_ms)
        return now - int(session.created_at_ms)

    def is_expired(self, session: GameSession, now_ms: int | None = None) -> bool:
        return self.elapsed_ms(session, now_ms) > self.expiry_ms

    def mark_completed(self, session_id: str) -> bool:
        return bool(self.store.mark_session_completed(session_id))
