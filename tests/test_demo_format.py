from __future__ import annotations

from pathlib import Path

import pytest

from platjump.replay import demo
from platjump.replay.types import InputEvent


def _demo() -> demo.Demo:
    header = demo.DemoHeader(
        seed=12345,
        score=3,
        total_ticks=634,
        flags=demo.build_header_flags(is_dead=True),
        recorded_at_ms=1_700_000_000_000,
        session_id="0b6c1f0e-0000-4000-8000-000000000001",
        player_name="Ada",
    )
    events = (
        InputEvent(0, "ArrowLeft", True),
        InputEvent(9, "ArrowLeft", False),
        InputEvent(11, " ", True),
    )
    return demo.Demo(header=header, events=events)


def test_demo_roundtrip() -> None:
    original = _demo()
    blob = demo.dumps(original)
    assert blob.startswith(demo.MAGIC)
    assert demo.loads(blob) == original


def test_demo_file_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "archive" / "run.pjdemo"
    demo.dump(_demo(), path)
    loaded = demo.load(path)
    assert loaded.header.flag(demo.FLAG_DEAD)
    assert not loaded.header.flag(demo.FLAG_CLAIMED_SCORE_MISMATCH)
    assert loaded.events == _demo().events


def test_demo_keeps_unicode_names() -> None:
    original = _demo()
    named = demo.Demo(
        header=demo.DemoHeader(seed=1, score=0, total_ticks=1, player_name="Zoë"),
        events=original.events,
    )
    assert demo.loads(demo.dumps(named)).header.player_name == "Zoë"


def test_build_header_flags() -> None:
    assert demo.build_header_flags(is_dead=False) == 0
    assert demo.build_header_flags(is_dead=True) == demo.FLAG_DEAD
    both = demo.build_header_flags(is_dead=True, claimed_score_mismatch=True)
    assert both == demo.FLAG_DEAD | demo.FLAG_CLAIMED_SCORE_MISMATCH


def test_demo_invalid_magic() -> None:
    blob = bytearray(demo.dumps(_demo()))
    blob[0:2] = b"XX"
    with pytest.raises(demo.DemoError, match="invalid magic"):
        demo.loads(bytes(blob))


@pytest.mark.parametrize("cut", [3, len(demo.MAGIC) + 5, -4])
def test_demo_truncated(cut: int) -> None:
    blob = demo.dumps(_demo())
    with pytest.raises(demo.DemoError, match="unexpected EOF"):
        demo.loads(blob[:cut])


def test_demo_trailing_data() -> None:
    with pytest.raises(demo.DemoError, match="trailing data"):
        demo.loads(demo.dumps(_demo()) + b"\x00")


def test_demo_unsupported_version() -> None:
    blob = bytearray(demo.dumps(_demo()))
    offset = len(demo.MAGIC)
    blob[offset : offset + 2] = b"\x02\x00"
    with pytest.raises(demo.DemoError, match="unsupported demo version: 2"):
        demo.loads(bytes(blob))
