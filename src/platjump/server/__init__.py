from __future__ import annotations

from .audit_log import AuditLog
from .protocol import ActionResult, ProtocolError, ScoreEntry, SessionResponse, SubmitScoreRequest
from .rate_limit import RateLimitResult, SlidingWindowRateLimiter
from .service import RateLimitedError, ScoreboardService
from .sessions import SessionManager
from .store import GameSession, MemoryStore, ScoreboardEntry, ScoreStore, SqliteStore, StoreError
from .verify import (
    InputValidationError,
    RejectionReason,
    ReplayImplausibleError,
    ScoreVerifier,
    SessionStateError,
    SubmitOutcome,
    VerificationError,
)

__all__ = [
    "ActionResult",
    "AuditLog",
    "GameSession",
    "InputValidationError",
    "MemoryStore",
    "ProtocolError",
    "RateLimitResult",
    "RateLimitedError",
    "RejectionReason",
    "ReplayImplausibleError",
    "ScoreEntry",
    "ScoreStore",
    "ScoreVerifier",
    "ScoreboardEntry",
    "ScoreboardService",
    "SessionManager",
    "SessionResponse",
    "SessionStateError",
    "SqliteStore",
    "StoreError",
    "SubmitOutcome",
    "SubmitScoreRequest",
    "SlidingWindowRateLimiter",
    "VerificationError",
]
