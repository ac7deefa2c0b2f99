from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..config import ServerConfig
from ..rand import random_seed
from .audit_log import AuditLog
from .protocol import (
    ActionResult,
    ProtocolError,
    ScoreEntry,
    SessionResponse,
    SubmitScoreRequest,
    decode_submit_request,
    format_created_at,
)
from .rate_limit import SlidingWindowRateLimiter
from .sessions import SessionManager, wall_clock_ms
from .store import ScoreStore, SqliteStore, StoreError
from .verify import PUBLIC_MESSAGES, RejectionReason, ScoreVerifier


class RateLimitedError(RuntimeError):
    def __init__(self, client_id: str) -> None:
        super().__init__("Too many requests. Please try again later.")
        self.client_id = client_id


class ScoreboardService:
    """Transport-agnostic scoreboard actions: start a session, submit, list."""

    def __init__(
        self,
        store: ScoreStore,
        *,
        config: ServerConfig | None = None,
        audit_log: AuditLog | None = None,
        now_ms: Callable[[], int] = wall_clock_ms,
        seed_source: Callable[[], int] = random_seed,
    ) -> None:
        self.config = config if config is not None else ServerConfig()
        self.store = store
        self.audit_log = audit_log if audit_log is not None else AuditLog(self.config.resolved_audit_log_path())
        self.sessions = SessionManager(store, now_ms=now_ms, seed_source=seed_source)
        self.verifier = ScoreVerifier(
            store,
            self.sessions,
            audit_log=self.audit_log,
            archive_dir=self.config.resolved_archive_dir(),
        )
        self.rate_limiter = SlidingWindowRateLimiter(
            now_ms=now_ms,
            max_requests=self.config.session_rate_limit_requests,
            window_ms=self.config.session_rate_limit_window_ms,
        )

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ScoreboardService":
        return cls(SqliteStore(config.resolved_database_path()), config=config)

    def start_game_session(self, client_id: str = "anonymous") -> SessionResponse:
        limit = self.rate_limiter.check(client_id)
        if not limit.allowed:
            self.audit_log.log("session_rate_limited", client=client_id)
            raise RateLimitedError(client_id)

        session = self.sessions.create()
        self.audit_log.log("session_created", session_id=session.id, client=client_id, remaining=limit.remaining)
        return SessionResponse(session_id=session.id, seed=session.seed)

    def submit_score(
        self,
        request: SubmitScoreRequest | bytes | str | dict[str, Any],
        *,
        client_id: str = "anonymous",
    ) -> ActionResult:
        if not isinstance(request, SubmitScoreRequest):
            try:
                request = decode_submit_request(request)
            except ProtocolError as exc:
                self.audit_log.log("submit_rejected", reason="malformed_request", detail=str(exc), client=client_id)
                return ActionResult(success=False, error=PUBLIC_MESSAGES[RejectionReason.INVALID_REPLAY_DATA])

        outcome = self.verifier.submit(
            request.session_id,
            request.player_name,
            request.input_events,
            claimed_score=request.score,
            client_id=client_id,
        )
        return outcome.to_action_result()

    def get_top_scores(self, limit: int | None = None) -> list[ScoreEntry]:
        count = self.config.top_scores_limit if limit is None else int(limit)
        try:
            entries = self.store.fetch_top_scores(count)
        except StoreError as exc:
            self.audit_log.log("store_error", stage="top_scores", error=str(exc))
            return []
        return [
            ScoreEntry(
                id=entry.id,
                player_name=entry.player_name,
                score=entry.score,
                created_at=format_created_at(entry.created_at_ms),
            )
            for entry in entries
        ]
