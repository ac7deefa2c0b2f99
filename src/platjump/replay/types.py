from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any

import msgspec

from ..constants import MAX_KEY_LENGTH, REPLAY_FORMAT_VERSION
from ..sim.fingerprint import rules_fingerprint

Tick = Annotated[int, msgspec.Meta(ge=0)]
# msgspec counts code points; the server also caps keys in UTF-16 units, see utf16_length.
KeyName = Annotated[str, msgspec.Meta(min_length=1, max_length=MAX_KEY_LENGTH)]


class InputEvent(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    """One key edge at a simulated tick: `{tick, key, pressed}` on the wire."""

    tick: Tick
    key: KeyName
    pressed: bool


@dataclass(frozen=True, slots=True)
class ReplayResult:
    score: int
    total_ticks: int
    is_dead: bool

    def to_wire(self) -> dict[str, Any]:
        return {"score": int(self.score), "totalTicks": int(self.total_ticks), "isDead": bool(self.is_dead)}


@dataclass(slots=True)
class Replay:
    seed: int
    events: list[InputEvent] = field(default_factory=list)
    version: int = REPLAY_FORMAT_VERSION
    rules: str = field(default_factory=rules_fingerprint)
    claimed_score: int | None = None


def utf16_length(text: str) -> int:
    """Length in UTF-16 code units, which is how the browser client counts keys."""
    return len(text.encode("utf-16-le")) // 2
