from __future__ import annotations

from collections.abc import Iterable

from ..constants import REPLAY_FORMAT_VERSION
from ..sim.input import GAME_KEYS
from .types import InputEvent, Replay


class InputRecorder:
    """Record key edges tagged with the simulation tick they apply to.

    Mirrors what the browser client sends: only game keys, no key-repeat
    presses, no releases for keys that are not held.
    """

    def __init__(self, *, allowed_keys: Iterable[str] = GAME_KEYS) -> None:
        self._allowed_keys = frozenset(allowed_keys)
        self._tick_index = 0
        self._events: list[InputEvent] = []
        self._held: set[str] = set()

    @property
    def tick_index(self) -> int:
        return int(self._tick_index)

    @property
    def active_keys(self) -> frozenset[str]:
        return frozenset(self._held)

    def record_key_down(self, key: str) -> bool:
        """Record a press; returns False when the edge was dropped."""
        if key not in self._allowed_keys or key in self._held:
            return False
        self._held.add(key)
        self._events.append(InputEvent(tick=self._tick_index, key=key, pressed=True))
        return True

    def record_key_up(self, key: str) -> bool:
        if key not in self._allowed_keys or key not in self._held:
            return False
        self._held.discard(key)
        self._events.append(InputEvent(tick=self._tick_index, key=key, pressed=False))
        return True

    def advance_tick(self) -> int:
        self._tick_index += 1
        return int(self._tick_index)

    @property
    def events(self) -> list[InputEvent]:
        return list(self._events)

    def reset(self) -> None:
        self._tick_index = 0
        self._events.clear()
        self._held.clear()

    def finish(self, seed: int, *, claimed_score: int | None = None) -> Replay:
        return Replay(
            seed=int(seed),
            events=list(self._events),
            version=REPLAY_FORMAT_VERSION,
            claimed_score=claimed_score,
        )
