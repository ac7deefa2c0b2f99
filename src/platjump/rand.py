from __future__ import annotations

import secrets

from .constants import SEED_RANGE

_MASK32 = 0xFFFFFFFF
_TWO_POW_32 = 4294967296.0


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


class Mulberry32:
    """Mulberry32 generator matching the browser client's `createSeededRandom`.

    Matches:
      state = state + 0x6D2B79F5
      t = imul(state ^ (state >>> 15), 1 | state)
      t = (t + imul(t ^ (t >>> 7), 61 | t)) ^ t
      return (t ^ (t >>> 14)) >>> 0
    """

    __slots__ = ("_state",)

    def __init__(self, seed: int) -> None:
        self._state = int(seed) & _MASK32

    @property
    def state(self) -> int:
        return self._state

    def seed(self, value: int) -> None:
        self._state = int(value) & _MASK32

    def next_u32(self) -> int:
        state = (self._state + 0x6D2B79F5) & _MASK32
        self._state = state
        t = _imul(state ^ (state >> 15), 1 | state)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return (t ^ (t >> 14)) & _MASK32

    def random(self) -> float:
        """Return the next value in `[0, 1)`."""
        return float(self.next_u32()) / _TWO_POW_32


def random_seed() -> int:
    return secrets.randbelow(SEED_RANGE)
