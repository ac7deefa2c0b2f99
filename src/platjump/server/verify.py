from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import enum
from pathlib import Path
from typing import Any

import msgspec

from ..constants import MAX_INPUT_EVENTS, MAX_KEY_LENGTH, MAX_SCORE, MIN_SCORE, TIME_TOLERANCE_MS, ticks_to_ms
from ..replay import demo
from ..replay.runner import ReplayRunnerError, replay_game
from ..replay.types import InputEvent, ReplayResult, utf16_length
from .audit_log import AuditLog
from .protocol import ActionResult
from .sanitize import is_valid_player_name, sanitize_player_name
from .sessions import SessionManager
from .store import GameSession, ScoreboardEntry, ScoreStore, StoreError


class RejectionReason(enum.StrEnum):
    INVALID_NAME = "invalid_name"
    INVALID_REPLAY_DATA = "invalid_replay_data"
    INVALID_SESSION = "invalid_session"
    ALREADY_SUBMITTED = "already_submitted"
    SESSION_EXPIRED = "session_expired"
    GAME_NOT_ENDED = "game_not_ended"
    INVALID_TIMING = "invalid_timing"
    INVALID_SCORE = "invalid_score"
    STORE_UNAVAILABLE = "store_unavailable"


# Implausibility reasons share one message so clients can't probe the checks.
_IMPLAUSIBLE_MESSAGE = "Invalid replay"

PUBLIC_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.INVALID_NAME: "Name must be 1-30 characters (letters, numbers, dashes)",
    RejectionReason.INVALID_REPLAY_DATA: "Invalid replay data",
    RejectionReason.INVALID_SESSION: "Invalid session",
    RejectionReason.ALREADY_SUBMITTED: "Score already submitted for this session",
    RejectionReason.SESSION_EXPIRED: "Session expired. Play again to save your score.",
    RejectionReason.GAME_NOT_ENDED: _IMPLAUSIBLE_MESSAGE,
    RejectionReason.INVALID_TIMING: _IMPLAUSIBLE_MESSAGE,
    RejectionReason.INVALID_SCORE: _IMPLAUSIBLE_MESSAGE,
    RejectionReason.STORE_UNAVAILABLE: "Failed to save score",
}


class VerificationError(ValueError):
    """A submission failed one of the gates; `detail` is for the audit log only."""

    def __init__(self, reason: RejectionReason, detail: str = "", **context: object) -> None:
        super().__init__(detail or str(reason))
        self.reason = reason
        self.detail = detail
        self.context = context

    @property
    def public_message(self) -> str:
        return PUBLIC_MESSAGES[self.reason]


class InputValidationError(VerificationError):
    pass


class SessionStateError(VerificationError):
    pass


class ReplayImplausibleError(VerificationError):
    pass


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    accepted: bool
    reason: RejectionReason | None = None
    entry: ScoreboardEntry | None = None
    replay: ReplayResult | None = None

    @property
    def message(self) -> str | None:
        if self.reason is None:
            return None
        return PUBLIC_MESSAGES[self.reason]

    def to_action_result(self) -> ActionResult:
        if self.accepted:
            return ActionResult(success=True)
        return ActionResult(success=False, error=self.message)


@dataclass(frozen=True, slots=True)
class VerifiedRun:
    player_name: str
    session: GameSession
    events: list[InputEvent]
    replay: ReplayResult


def validate_input_events(raw: Any, *, max_events: int = MAX_INPUT_EVENTS) -> list[InputEvent]:
    """Check the log's shape: a list within the size cap, every element well-formed.

    The length is checked before any element is inspected. Already-built
    `InputEvent` instances go through the same validation as raw dicts.
    """

    if not isinstance(raw, (list, tuple)):
        raise InputValidationError(RejectionReason.INVALID_REPLAY_DATA, "input events are not a list")
    if len(raw) > int(max_events):
        raise InputValidationError(
            RejectionReason.INVALID_REPLAY_DATA,
            "too many input events",
            event_count=len(raw),
            max_events=int(max_events),
        )
    try:
        events = msgspec.convert(msgspec.to_builtins(list(raw)), type=list[InputEvent], strict=True)
    except (msgspec.ValidationError, TypeError) as exc:
        raise InputValidationError(RejectionReason.INVALID_REPLAY_DATA, f"malformed input event: {exc}") from exc
    for index, event in enumerate(events):
        if utf16_length(event.key) > MAX_KEY_LENGTH:
            raise InputValidationError(
                RejectionReason.INVALID_REPLAY_DATA,
                "input event key too long",
                index=index,
                key_length=utf16_length(event.key),
            )
    return events


def validate_player_name(raw: Any) -> str:
    if not isinstance(raw, str):
        raise InputValidationError(RejectionReason.INVALID_NAME, "player name is not a string")
    name = sanitize_player_name(raw)
    if not is_valid_player_name(name):
        raise InputValidationError(RejectionReason.INVALID_NAME, "player name empty or too long", length=len(name))
    return name


class ScoreVerifier:
    """Decide whether a submitted input log earns a scoreboard entry.

    The score is never taken from the client: it is recomputed by replaying
    the log against the session's seed. Gates run in a fixed order and
    nothing is written until all of them pass.
    """

    def __init__(
        self,
        store: ScoreStore,
        sessions: SessionManager,
        *,
        audit_log: AuditLog | None = None,
        archive_dir: Path | None = None,
        max_input_events: int = MAX_INPUT_EVENTS,
        time_tolerance_ms: int = TIME_TOLERANCE_MS,
        replay: Callable[[int, list[InputEvent]], ReplayResult] = replay_game,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.archive_dir = None if archive_dir is None else Path(archive_dir)
        self.max_input_events = int(max_input_events)
        self.time_tolerance_ms = int(time_tolerance_ms)
        self._replay = replay

    def _check_session(self, session_id: Any, now_ms: int) -> GameSession:
        if not isinstance(session_id, str):
            raise SessionStateError(RejectionReason.INVALID_SESSION, "session id is not a string")
        session = self.sessions.load(session_id)
        if session is None:
            raise SessionStateError(RejectionReason.INVALID_SESSION, "unknown session", session_id=session_id)
        if session.completed:
            raise SessionStateError(RejectionReason.ALREADY_SUBMITTED, "session completed", session_id=session_id)
        if self.sessions.is_expired(session, now_ms):
            raise SessionStateError(
                RejectionReason.SESSION_EXPIRED,
                "session expired",
                session_id=session_id,
                elapsed_ms=self.sessions.elapsed_ms(session, now_ms),
            )
        return session

    def _check_replay(self, session: GameSession, events: list[InputEvent], now_ms: int) -> ReplayResult:
        try:
            result = self._replay(session.seed, events)
        except ReplayRunnerError as exc:
            raise InputValidationError(RejectionReason.INVALID_REPLAY_DATA, str(exc), session_id=session.id) from exc

        if not result.is_dead:
            raise ReplayImplausibleError(
                RejectionReason.GAME_NOT_ENDED,
                "replay did not end in death",
                session_id=session.id,
                total_ticks=result.total_ticks,
                score=result.score,
            )

        elapsed_ms = self.sessions.elapsed_ms(session, now_ms)
        replay_ms = ticks_to_ms(result.total_ticks)
        if replay_ms > elapsed_ms + self.time_tolerance_ms:
            raise ReplayImplausibleError(
                RejectionReason.INVALID_TIMING,
                "replay longer than wall clock",
                session_id=session.id,
                replay_ms=replay_ms,
                elapsed_ms=elapsed_ms,
                total_ticks=result.total_ticks,
            )

        if not (MIN_SCORE <= result.score <= MAX_SCORE):
            raise ReplayImplausibleError(
                RejectionReason.INVALID_SCORE,
                "score out of bounds",
                session_id=session.id,
                score=result.score,
            )
        return result

    def verify(self, session_id: Any, player_name: Any, input_events: Any, *, now_ms: int) -> VerifiedRun:
        """Run every read-only gate; raises `VerificationError` or `StoreError`."""

        name = validate_player_name(player_name)
        events = validate_input_events(input_events, max_events=self.max_input_events)
        session = self._check_session(session_id, now_ms)
        result = self._check_replay(session, events, now_ms)
        return VerifiedRun(player_name=name, session=session, events=events, replay=result)

    def submit(
        self,
        session_id: Any,
        player_name: Any,
        input_events: Any,
        *,
        claimed_score: Any = None,
        client_id: str = "",
    ) -> SubmitOutcome:
        now_ms = self.sessions.now_ms()

        try:
            run = self.verify(session_id, player_name, input_events, now_ms=now_ms)
        except VerificationError as exc:
            self.audit_log.log(
                "submit_rejected",
                reason=str(exc.reason),
                detail=exc.detail,
                client=client_id,
                **exc.context,
            )
            return SubmitOutcome(accepted=False, reason=exc.reason)
        except StoreError as exc:
            self.audit_log.log("store_error", stage="verify", client=client_id, error=str(exc))
            return SubmitOutcome(accepted=False, reason=RejectionReason.STORE_UNAVAILABLE)

        score_mismatch = claimed_score is not None and claimed_score != run.replay.score
        if score_mismatch:
            self.audit_log.log(
                "claimed_score_mismatch",
                session_id=run.session.id,
                claimed=claimed_score,
                verified=run.replay.score,
                client=client_id,
            )

        try:
            entry = self.store.complete_session_and_insert_score(
                run.session.id, run.player_name, run.replay.score, now_ms
            )
        except StoreError as exc:
            self.audit_log.log(
                "store_error", stage="commit", session_id=run.session.id, client=client_id, error=str(exc)
            )
            return SubmitOutcome(accepted=False, reason=RejectionReason.STORE_UNAVAILABLE, replay=run.replay)
        if entry is None:
            self.audit_log.log(
                "submit_rejected",
                reason=str(RejectionReason.ALREADY_SUBMITTED),
                detail="lost completion race",
                session_id=run.session.id,
                client=client_id,
            )
            return SubmitOutcome(accepted=False, reason=RejectionReason.ALREADY_SUBMITTED, replay=run.replay)

        self.audit_log.log(
            "submit_accepted",
            session_id=run.session.id,
            player_name=run.player_name,
            score=run.replay.score,
            total_ticks=run.replay.total_ticks,
            entry_id=entry.id,
            client=client_id,
        )
        if self.archive_dir is not None:
            try:
                path = self._archive(run, entry, score_mismatch=score_mismatch)
            except (demo.DemoError, OSError) as exc:
                self.audit_log.log("archive_failed", session_id=run.session.id, error=str(exc))
            else:
                self.audit_log.log("archive_written", session_id=run.session.id, path=path)
        return SubmitOutcome(accepted=True, entry=entry, replay=run.replay)

    def _archive(self, run: VerifiedRun, entry: ScoreboardEntry, *, score_mismatch: bool) -> Path:
        assert self.archive_dir is not None
        header = demo.DemoHeader(
            seed=run.session.seed,
            score=run.replay.score,
            total_ticks=run.replay.total_ticks,
            flags=demo.build_header_flags(is_dead=run.replay.is_dead, claimed_score_mismatch=score_mismatch),
            recorded_at_ms=entry.created_at_ms,
            session_id=run.session.id,
            player_name=run.player_name,
        )
        path = self.archive_dir / f"{run.session.id}.pjdemo"
        demo.dump(demo.Demo(header=header, events=tuple(run.events)), path)
        return path
