from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import Path
from typing import Final

from construct import Array, Byte, Const, ConstructError, ConstError, Int16ul, Int32ul, Int64ul, PascalString
from construct import Padding, StreamError, Struct, Terminated, TerminatedError

from .types import InputEvent

MAGIC: Final[bytes] = b"PJDEMO\x00"
VERSION: Final[int] = 1

FLAG_DEAD: Final[int] = 1 << 0
FLAG_CLAIMED_SCORE_MISMATCH: Final[int] = 1 << 1


class DemoError(ValueError):
    pass


_MAGIC = Const(MAGIC)

_HEADER_V1 = Struct(
    "version" / Int16ul,
    "flags" / Int16ul,
    "seed" / Int32ul,
    "score" / Int32ul,
    "total_ticks" / Int32ul,
    Padding(4),
    "recorded_at_ms" / Int64ul,
    "event_count" / Int32ul,
)

_NAMES_V1 = Struct(
    "session_id" / PascalString(Byte, "utf8"),
    "player_name" / PascalString(Byte, "utf8"),
)

_EVENT_V1 = Struct(
    "tick" / Int64ul,
    "pressed" / Byte,
    "key" / PascalString(Byte, "utf8"),
)


@dataclass(frozen=True, slots=True)
class DemoHeader:
    """Outcome of an accepted run, stored next to the inputs that produced it."""

    seed: int
    score: int
    total_ticks: int
    flags: int = 0
    recorded_at_ms: int = 0
    session_id: str = ""
    player_name: str = ""

    def flag(self, mask: int) -> bool:
        return (int(self.flags) & int(mask)) != 0


@dataclass(frozen=True, slots=True)
class Demo:
    header: DemoHeader
    events: tuple[InputEvent, ...]


def loads(data: bytes) -> Demo:
    stream = io.BytesIO(data)

    try:
        _MAGIC.parse_stream(stream)
    except StreamError as exc:
        raise DemoError("unexpected EOF") from exc
    except ConstError as exc:
        raise DemoError("invalid magic") from exc

    try:
        header_raw = _HEADER_V1.parse_stream(stream)
    except ConstructError as exc:
        raise DemoError("unexpected EOF") from exc

    version = int(header_raw["version"])
    if version != VERSION:
        raise DemoError(f"unsupported demo version: {version}")

    try:
        names_raw = _NAMES_V1.parse_stream(stream)
        events_raw = Array(int(header_raw["event_count"]), _EVENT_V1).parse_stream(stream)
        Terminated.parse_stream(stream)
    except StreamError as exc:
        raise DemoError("unexpected EOF") from exc
    except TerminatedError as exc:
        raise DemoError("trailing data") from exc
    except (ConstructError, UnicodeDecodeError) as exc:
        raise DemoError(str(exc)) from exc

    events = tuple(
        InputEvent(tick=int(entry["tick"]), key=str(entry["key"]), pressed=bool(entry["pressed"]))
        for entry in events_raw
    )

    header = DemoHeader(
        seed=int(header_raw["seed"]),
        score=int(header_raw["score"]),
        total_ticks=int(header_raw["total_ticks"]),
        flags=int(header_raw["flags"]),
        recorded_at_ms=int(header_raw["recorded_at_ms"]),
        session_id=str(names_raw["session_id"]),
        player_name=str(names_raw["player_name"]),
    )
    return Demo(header=header, events=events)


def load(path: Path) -> Demo:
    return loads(Path(path).read_bytes())


def dumps(demo: Demo) -> bytes:
    header = demo.header
    events = demo.events

    header_raw = {
        "version": int(VERSION),
        "flags": int(header.flags) & 0xFFFF,
        "seed": int(header.seed) & 0xFFFF_FFFF,
        "score": int(header.score) & 0xFFFF_FFFF,
        "total_ticks": int(header.total_ticks) & 0xFFFF_FFFF,
        "recorded_at_ms": int(header.recorded_at_ms),
        "event_count": len(events),
    }
    names_raw = {
        "session_id": str(header.session_id),
        "player_name": str(header.player_name),
    }
    events_raw = [
        {
            "tick": int(event.tick),
            "pressed": 1 if event.pressed else 0,
            "key": str(event.key),
        }
        for event in events
    ]

    out = bytearray()
    out += MAGIC
    try:
        out += _HEADER_V1.build(header_raw)
        out += _NAMES_V1.build(names_raw)
        out += Array(len(events), _EVENT_V1).build(events_raw)
    except ConstructError as exc:
        raise DemoError(str(exc)) from exc

    return bytes(out)


def dump(demo: Demo, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps(demo))


def build_header_flags(*, is_dead: bool, claimed_score_mismatch: bool = False) -> int:
    flags = 0
    if is_dead:
        flags |= FLAG_DEAD
    if claimed_score_mismatch:
        flags |= FLAG_CLAIMED_SCORE_MISMATCH
    return flags
