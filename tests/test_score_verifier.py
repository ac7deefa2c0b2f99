from __future__ import annotations

import functools
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path

import pytest

from platjump.constants import SESSION_EXPIRY_MS
from platjump.replay import demo
from platjump.replay.runner import replay_game
from platjump.replay.types import InputEvent, ReplayResult
from platjump.server.audit_log import AuditLog
from platjump.server.sessions import SessionManager
from platjump.server.store import GameSession, MemoryStore, SqliteStore, StoreError
from platjump.server.verify import (
    PUBLIC_MESSAGES,
    InputValidationError,
    RejectionReason,
    ScoreVerifier,
    validate_input_events,
    validate_player_name,
)

# Seed 12345 with ArrowRight held from tick 0 dies on tick 322 with score 1.
SEED = 12345
RIGHT_HOLD = [{"tick": 0, "key": "ArrowRight", "pressed": True}]
RIGHT_HOLD_MS = 322 * 1000 / 60


@dataclass
class Harness:
    store: MemoryStore
    sessions: SessionManager
    verifier: ScoreVerifier
    audit_path: Path

    def audit_text(self) -> str:
        return self.audit_path.read_text(encoding="utf-8")


@pytest.fixture
def harness(clock, tmp_path: Path) -> Harness:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    audit_path = tmp_path / "audit.log"
    verifier = ScoreVerifier(store, sessions, audit_log=AuditLog(audit_path))
    return Harness(store=store, sessions=sessions, verifier=verifier, audit_path=audit_path)


def _played(harness: Harness, clock, ms: float = 10_000) -> GameSession:
    session = harness.sessions.create()
    clock.advance(int(ms))
    return session


def test_honest_run_is_accepted(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    outcome = harness.verifier.submit(session.id, "  Ada  ", RIGHT_HOLD, client_id="1.2.3.4")
    assert outcome.accepted is True
    assert outcome.reason is None
    assert outcome.replay == ReplayResult(score=1, total_ticks=322, is_dead=True)
    assert outcome.entry is not None
    assert outcome.entry.player_name == "Ada"
    assert outcome.entry.score == 1
    assert outcome.entry.created_at_ms == clock()
    assert outcome.to_action_result().success is True
    assert outcome.to_action_result().error is None

    top = harness.store.fetch_top_scores(10)
    assert [(entry.player_name, entry.score) for entry in top] == [("Ada", 1)]
    completed = harness.store.fetch_session(session.id)
    assert completed is not None and completed.completed is True
    assert "event=submit_accepted" in harness.audit_text()


def test_resubmission_is_rejected(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    assert harness.verifier.submit(session.id, "Ada", RIGHT_HOLD).accepted
    again = harness.verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert again.reason is RejectionReason.ALREADY_SUBMITTED
    assert again.message == "Score already submitted for this session"
    assert len(harness.store.fetch_top_scores(10)) == 1


def test_replay_faster_than_wall_clock_is_rejected(harness: Harness, clock) -> None:
    session = _played(harness, clock, ms=100)
    outcome = harness.verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.INVALID_TIMING
    assert outcome.message == "Invalid replay"
    assert harness.store.fetch_top_scores(10) == []
    untouched = harness.store.fetch_session(session.id)
    assert untouched is not None and untouched.completed is False
    text = harness.audit_text()
    assert "reason=invalid_timing" in text
    assert "total_ticks=322" in text


def test_timing_tolerance_boundary(harness: Harness, clock) -> None:
    # 322 ticks take 5366.67 ms; the tolerance is 5000 ms.
    early = _played(harness, clock, ms=366)
    assert harness.verifier.submit(early.id, "Ada", RIGHT_HOLD).reason is RejectionReason.INVALID_TIMING
    assert harness.verifier.submit(early.id, "Ada", RIGHT_HOLD).reason is RejectionReason.INVALID_TIMING

    on_time = _played(harness, clock, ms=367)
    assert harness.verifier.submit(on_time.id, "Ada", RIGHT_HOLD).accepted


def test_run_that_never_dies_is_rejected(clock, tmp_path: Path) -> None:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    verifier = ScoreVerifier(store, sessions, replay=functools.partial(replay_game, max_ticks=600))
    session = sessions.create()
    clock.advance(60_000)
    outcome = verifier.submit(session.id, "Ada", [])
    assert outcome.reason is RejectionReason.GAME_NOT_ENDED
    assert outcome.message == "Invalid replay"


def test_score_out_of_bounds_is_rejected(clock) -> None:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)

    def inflated(seed: int, events: list[InputEvent]) -> ReplayResult:
        return ReplayResult(score=100_000, total_ticks=60, is_dead=True)

    verifier = ScoreVerifier(store, sessions, replay=inflated)
    session = sessions.create()
    clock.advance(5_000)
    outcome = verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.INVALID_SCORE
    assert outcome.message == "Invalid replay"
    assert store.fetch_top_scores(10) == []


def test_expired_session_is_rejected(harness: Harness, clock) -> None:
    session = _played(harness, clock, ms=SESSION_EXPIRY_MS + 1)
    outcome = harness.verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.SESSION_EXPIRED
    assert outcome.message == "Session expired. Play again to save your score."


def test_session_at_expiry_is_still_valid(harness: Harness, clock) -> None:
    session = _played(harness, clock, ms=SESSION_EXPIRY_MS)
    assert harness.verifier.submit(session.id, "Ada", RIGHT_HOLD).accepted


@pytest.mark.parametrize("session_id", ["", "no-such-session", None, 42])
def test_unknown_session_is_rejected(harness: Harness, session_id: object) -> None:
    outcome = harness.verifier.submit(session_id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.INVALID_SESSION
    assert outcome.message == "Invalid session"


@pytest.mark.parametrize("name", ["", "   ", "<b></b>", "x" * 31, None, 7])
def test_bad_names_are_rejected(harness: Harness, clock, name: object) -> None:
    session = _played(harness, clock)
    outcome = harness.verifier.submit(session.id, name, RIGHT_HOLD)
    assert outcome.reason is RejectionReason.INVALID_NAME
    assert outcome.message == "Name must be 1-30 characters (letters, numbers, dashes)"


def test_name_is_sanitized_before_storing(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    outcome = harness.verifier.submit(session.id, "<script>x</script>Bob<i>!</i>", RIGHT_HOLD)
    assert outcome.entry is not None
    assert outcome.entry.player_name == "Bob"


@pytest.mark.parametrize(
    "events",
    [
        None,
        "[]",
        {"tick": 0},
        [5],
        [{"tick": -1, "key": "ArrowRight", "pressed": True}],
        [{"tick": 1.5, "key": "ArrowRight", "pressed": True}],
        [{"tick": "0", "key": "ArrowRight", "pressed": True}],
        [{"tick": 0, "key": "", "pressed": True}],
        [{"tick": 0, "key": "K" * 21, "pressed": True}],
        [{"tick": 0, "key": "\U0001F600" * 11, "pressed": True}],
        [{"tick": 0, "key": "ArrowRight", "pressed": 1}],
        [{"tick": 0, "key": "ArrowRight"}],
        [{"tick": 0, "key": "ArrowRight", "pressed": True, "x": 1}],
    ],
)
def test_malformed_events_are_rejected_without_side_effects(harness: Harness, clock, events: object) -> None:
    session = _played(harness, clock)
    outcome = harness.verifier.submit(session.id, "Ada", events)
    assert outcome.reason is RejectionReason.INVALID_REPLAY_DATA
    assert outcome.message == "Invalid replay data"
    assert harness.store.fetch_top_scores(10) == []
    untouched = harness.store.fetch_session(session.id)
    assert untouched is not None and untouched.completed is False


def test_too_many_events_rejected_before_inspection(clock) -> None:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    verifier = ScoreVerifier(store, sessions, max_input_events=3)
    session = sessions.create()
    clock.advance(10_000)
    garbage = [object()] * 4
    assert verifier.submit(session.id, "Ada", garbage).reason is RejectionReason.INVALID_REPLAY_DATA
    assert verifier.submit(session.id, "Ada", RIGHT_HOLD * 3).accepted


def test_gates_run_in_order(harness: Harness, clock) -> None:
    session = _played(harness, clock, ms=1)
    assert harness.verifier.submit("nope", "", None).reason is RejectionReason.INVALID_NAME
    assert harness.verifier.submit("nope", "Ada", None).reason is RejectionReason.INVALID_REPLAY_DATA
    assert harness.verifier.submit("nope", "Ada", RIGHT_HOLD).reason is RejectionReason.INVALID_SESSION
    assert harness.verifier.submit(session.id, "Ada", RIGHT_HOLD).reason is RejectionReason.INVALID_TIMING


def test_claimed_score_is_ignored_but_logged(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    outcome = harness.verifier.submit(session.id, "Ada", RIGHT_HOLD, claimed_score=99_999)
    assert outcome.accepted is True
    assert outcome.entry is not None and outcome.entry.score == 1
    text = harness.audit_text()
    assert "event=claimed_score_mismatch" in text
    assert "claimed=99999" in text
    assert "verified=1" in text


def test_matching_claimed_score_is_not_flagged(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    assert harness.verifier.submit(session.id, "Ada", RIGHT_HOLD, claimed_score=1).accepted
    assert "claimed_score_mismatch" not in harness.audit_text()


def test_prebuilt_events_are_accepted(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    events = [InputEvent(0, "ArrowRight", True)]
    assert harness.verifier.submit(session.id, "Ada", events).accepted


class _FailingFetchStore(MemoryStore):
    def fetch_session(self, session_id: str):
        raise StoreError("database is locked")


def test_store_failure_while_verifying_reports_generic_error(clock, tmp_path: Path) -> None:
    store = _FailingFetchStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    audit_path = tmp_path / "audit.log"
    verifier = ScoreVerifier(store, sessions, audit_log=AuditLog(audit_path))
    session = sessions.create()
    clock.advance(10_000)
    outcome = verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.STORE_UNAVAILABLE
    assert outcome.to_action_result().error == "Failed to save score"
    text = audit_path.read_text(encoding="utf-8")
    assert "event=store_error" in text
    assert "stage=verify" in text


def test_failed_score_insert_leaves_session_open(clock, tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "scores.sqlite3")
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    audit_path = tmp_path / "audit.log"
    verifier = ScoreVerifier(store, sessions, audit_log=AuditLog(audit_path))
    session = sessions.create()
    clock.advance(10_000)

    with closing(sqlite3.connect(store.db_path)) as conn:
        conn.execute(
            "CREATE TRIGGER reject_scores BEFORE INSERT ON game_scoreboard "
            "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
        )
        conn.commit()

    outcome = verifier.submit(session.id, "Ada", RIGHT_HOLD)
    assert outcome.reason is RejectionReason.STORE_UNAVAILABLE
    assert outcome.to_action_result().error == "Failed to save score"
    assert "stage=commit" in audit_path.read_text(encoding="utf-8")
    assert store.fetch_top_scores(10) == []
    still_open = store.fetch_session(session.id)
    assert still_open is not None and still_open.completed is False

    with closing(sqlite3.connect(store.db_path)) as conn:
        conn.execute("DROP TRIGGER reject_scores")
        conn.commit()

    assert verifier.submit(session.id, "Ada", RIGHT_HOLD).accepted
    assert [(entry.player_name, entry.score) for entry in store.fetch_top_scores(10)] == [("Ada", 1)]


def test_concurrent_submissions_have_one_winner(harness: Harness, clock) -> None:
    session = _played(harness, clock)
    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: harness.verifier.submit(session.id, "Ada", RIGHT_HOLD), range(8)))
    assert sum(outcome.accepted for outcome in outcomes) == 1
    assert {outcome.reason for outcome in outcomes if not outcome.accepted} == {RejectionReason.ALREADY_SUBMITTED}
    assert len(harness.store.fetch_top_scores(10)) == 1


def test_accepted_runs_are_archived(clock, tmp_path: Path) -> None:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    archive_dir = tmp_path / "archive"
    verifier = ScoreVerifier(store, sessions, archive_dir=archive_dir)
    session = sessions.create()
    clock.advance(10_000)
    assert verifier.submit(session.id, "Ada", RIGHT_HOLD, claimed_score=5).accepted

    archived = demo.load(archive_dir / f"{session.id}.pjdemo")
    assert archived.header.seed == SEED
    assert archived.header.score == 1
    assert archived.header.total_ticks == 322
    assert archived.header.session_id == session.id
    assert archived.header.player_name == "Ada"
    assert archived.header.recorded_at_ms == clock()
    assert archived.header.flag(demo.FLAG_DEAD)
    assert archived.header.flag(demo.FLAG_CLAIMED_SCORE_MISMATCH)
    assert archived.events == (InputEvent(0, "ArrowRight", True),)
    assert replay_game(archived.header.seed, list(archived.events)).score == archived.header.score


def test_archive_failure_keeps_submission(clock, tmp_path: Path) -> None:
    store = MemoryStore()
    sessions = SessionManager(store, now_ms=clock, seed_source=lambda: SEED)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    audit_path = tmp_path / "audit.log"
    verifier = ScoreVerifier(store, sessions, audit_log=AuditLog(audit_path), archive_dir=blocker)
    session = sessions.create()
    clock.advance(10_000)
    assert verifier.submit(session.id, "Ada", RIGHT_HOLD).accepted
    assert "event=archive_failed" in audit_path.read_text(encoding="utf-8")


def test_public_messages_cover_every_reason() -> None:
    assert set(PUBLIC_MESSAGES) == set(RejectionReason)


def test_validators_directly() -> None:
    assert validate_player_name(" Ada ") == "Ada"
    assert validate_input_events([]) == []
    with pytest.raises(InputValidationError) as excinfo:
        validate_input_events([{}] * 3, max_events=2)
    assert excinfo.value.context == {"event_count": 3, "max_events": 2}
    assert excinfo.value.public_message == "Invalid replay data"


def test_key_length_counts_utf16_units() -> None:
    # Astral characters take two UTF-16 units each, as the browser counts them.
    assert len(validate_input_events([{"tick": 0, "key": "\U0001F600" * 10, "pressed": True}])) == 1
    with pytest.raises(InputValidationError) as excinfo:
        validate_input_events([{"tick": 0, "key": "\U0001F600" * 11, "pressed": True}])
    assert excinfo.value.context == {"index": 0, "key_length": 22}
