from __future__ import annotations

from collections.abc import Container, Iterable, Iterator

LEFT_KEYS = frozenset({"ArrowLeft", "a", "A"})
RIGHT_KEYS = frozenset({"ArrowRight", "d", "D"})

# Keys the client records; anything else in a submitted log is inert.
GAME_KEYS = frozenset({"ArrowLeft", "ArrowRight", "ArrowUp", "ArrowDown", "a", "A", "d", "D", " "})


class KeyState:
    """Set of currently held keys, driven by press/release edges.

    Releasing a key that is not held and pressing a key that is already held
    are both no-ops. Unknown keys are kept but never reach the physics.
    """

    __slots__ = ("_held",)

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._held: set[str] = set(keys)

    def apply(self, key: str, pressed: bool) -> None:
        if pressed:
            self._held.add(key)
        else:
            self._held.discard(key)

    def clear(self) -> None:
        self._held.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._held

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._held))

    def __len__(self) -> int:
        return len(self._held)

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._held)


def horizontal_intent(active_keys: Container[str]) -> int:
    """Return -1 (left), 1 (right) or 0. Left wins when both are held."""
    if any(key in active_keys for key in LEFT_KEYS):
        return -1
    if any(key in active_keys for key in RIGHT_KEYS):
        return 1
    return 0
