from __future__ import annotations

from platjump.replay.recorder import InputRecorder
from platjump.replay.types import InputEvent


def test_recorder_tags_events_with_current_tick() -> None:
    rec = InputRecorder()
    assert rec.record_key_down("ArrowLeft")
    rec.advance_tick()
    rec.advance_tick()
    assert rec.record_key_up("ArrowLeft")
    assert rec.tick_index == 2
    assert rec.events == [InputEvent(0, "ArrowLeft", True), InputEvent(2, "ArrowLeft", False)]


def test_recorder_drops_key_repeat_and_unheld_release() -> None:
    rec = InputRecorder()
    assert rec.record_key_down("d")
    assert not rec.record_key_down("d")
    assert not rec.record_key_up("a")
    assert rec.active_keys == frozenset({"d"})
    assert len(rec.events) == 1


def test_recorder_ignores_non_game_keys() -> None:
    rec = InputRecorder()
    assert not rec.record_key_down("Escape")
    assert not rec.record_key_down("w")
    assert rec.record_key_down(" ")
    assert rec.record_key_down("ArrowUp")
    assert [event.key for event in rec.events] == [" ", "ArrowUp"]


def test_recorder_finish_and_reset() -> None:
    rec = InputRecorder()
    rec.record_key_down("ArrowRight")
    rec.advance_tick()
    replay = rec.finish(555, claimed_score=7)
    assert replay.seed == 555
    assert replay.claimed_score == 7
    assert replay.events == [InputEvent(0, "ArrowRight", True)]

    rec.reset()
    assert rec.tick_index == 0
    assert rec.events == []
    assert rec.active_keys == frozenset()
    # The finished replay owns its own list.
    assert len(replay.events) == 1
