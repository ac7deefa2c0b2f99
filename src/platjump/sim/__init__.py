from __future__ import annotations

from .fingerprint import fingerprint_state, layout_fingerprint
from .input import GAME_KEYS, LEFT_KEYS, RIGHT_KEYS, KeyState, horizontal_intent
from .state_types import Coin, Enemy, GameState, Platform, PlayerState, TickEvents
from .step import advance_tick, create_initial_state

__all__ = [
    "GAME_KEYS",
    "LEFT_KEYS",
    "RIGHT_KEYS",
    "Coin",
    "Enemy",
    "GameState",
    "KeyState",
    "Platform",
    "PlayerState",
    "TickEvents",
    "advance_tick",
    "create_initial_state",
    "fingerprint_state",
    "horizontal_intent",
    "layout_fingerprint",
]
