from __future__ import annotations

import functools
import hashlib
import struct

from ..constants import MAX_GAME_TICKS, REPLAY_FORMAT_VERSION, TICK_RATE
from . import state_types
from .state_types import GameState

_U8 = struct.Struct("<B")
_I8 = struct.Struct("<b")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_F64 = struct.Struct("<d")


def _h_u8(h: "hashlib._Hash", value: int) -> None:
    h.update(_U8.pack(int(value) & 0xFF))


def _h_i8(h: "hashlib._Hash", value: int) -> None:
    h.update(_I8.pack(max(-128, min(127, int(value)))))


def _h_u16(h: "hashlib._Hash", value: int) -> None:
    h.update(_U16.pack(int(value) & 0xFFFF))


def _h_u32(h: "hashlib._Hash", value: int) -> None:
    h.update(_U32.pack(int(value) & 0xFFFF_FFFF))


def _h_f64(h: "hashlib._Hash", value: float) -> None:
    h.update(_F64.pack(float(value)))


def fingerprint_state(state: GameState) -> int:
    """Return a stable 64-bit digest of the whole simulation frame.

    Floats are packed as full doubles: the simulation is expected to match the
    client bit-for-bit, so any drift must change the digest.
    """

    h = hashlib.blake2b(digest_size=8)

    _h_u32(h, state.tick)
    _h_u32(h, state.score)
    _h_f64(h, state.max_height)
    _h_f64(h, state.camera_y)
    _h_u32(h, state.platforms_cleared)
    _h_u8(h, 1 if state.is_dead else 0)
    _h_u8(h, 1 if state.is_paused else 0)

    player = state.player
    _h_f64(h, player.x)
    _h_f64(h, player.y)
    _h_f64(h, player.velocity_x)
    _h_f64(h, player.velocity_y)
    _h_u8(h, 1 if player.facing_right else 0)

    _h_u16(h, len(state.platforms))
    for platform in state.platforms:
        _h_f64(h, platform.x)
        _h_f64(h, platform.y)
        _h_f64(h, platform.width)
        _h_u8(h, 1 if platform.has_spikes else 0)
        _h_f64(h, platform.spike_offset_x)

    _h_u16(h, len(state.enemies))
    for enemy in state.enemies:
        _h_f64(h, enemy.x)
        _h_f64(h, enemy.y)
        _h_i8(h, enemy.direction)
        _h_u16(h, enemy.platform_index)

    _h_u16(h, len(state.coins))
    for coin in state.coins:
        _h_f64(h, coin.x)
        _h_f64(h, coin.y)
        _h_u8(h, 1 if coin.collected else 0)

    return int.from_bytes(h.digest(), "little")


def layout_fingerprint(state: GameState) -> int:
    """Digest of the procedurally generated layout only (platforms, enemies, coins)."""

    h = hashlib.blake2b(digest_size=8)
    for platform in state.platforms:
        _h_f64(h, platform.x)
        _h_f64(h, platform.y)
        _h_f64(h, platform.width)
        _h_u8(h, 1 if platform.has_spikes else 0)
    for enemy in state.enemies:
        _h_f64(h, enemy.x)
        _h_f64(h, enemy.y)
    for coin in state.coins:
        _h_f64(h, coin.x)
        _h_f64(h, coin.y)
    return int.from_bytes(h.digest(), "little")


# Constants that change what a given input log replays to.
_RULE_CONSTANTS = (
    "CANVAS_WIDTH",
    "CANVAS_HEIGHT",
    "GRAVITY",
    "JUMP_FORCE",
    "PLAYER_SIZE",
    "PLAYER_RUN_SPEED",
    "PLAYER_FRICTION",
    "PLATFORM_HEIGHT",
    "PLATFORM_MIN_WIDTH",
    "PLATFORM_MAX_WIDTH",
    "SPIKE_WIDTH",
    "SPIKE_HEIGHT",
    "ENEMY_SIZE",
    "ENEMY_SPEED",
    "PLATFORM_COUNT",
    "POINTS_PER_PLATFORM",
    "COIN_SIZE",
    "POINTS_PER_COIN",
    "RECYCLE_MARGIN",
    "FALL_MARGIN",
    "CAMERA_FOLLOW_RATIO",
)


@functools.cache
def rules_fingerprint() -> str:
    """16-hex digest of the tick rate and physics constants.

    Stored in replay files so a log recorded under different rules can be
    told apart from a genuine desync.
    """

    h = hashlib.blake2b(digest_size=8)
    _h_u32(h, REPLAY_FORMAT_VERSION)
    _h_u32(h, TICK_RATE)
    _h_u32(h, MAX_GAME_TICKS)
    for name in _RULE_CONSTANTS:
        value = getattr(state_types, name)
        h.update(name.encode("ascii"))
        if isinstance(value, int):
            _h_u32(h, value)
        else:
            _h_f64(h, value)
    return h.hexdigest()
