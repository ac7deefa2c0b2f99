"""Procedural platform/enemy/coin placement.

Every helper draws from the PRNG in a fixed order; reordering a draw changes
every layout generated after it.
"""

from __future__ import annotations

import math

from ..rand import Mulberry32
from .state_types import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    COIN_SIZE,
    PLATFORM_COUNT,
    PLATFORM_MAX_WIDTH,
    PLATFORM_MIN_WIDTH,
    SPIKE_WIDTH,
    Coin,
    Platform,
)

_SPIKE_POSITIONS = ("left", "right", "center")


def js_round(value: float) -> float:
    """Round half up, like JavaScript `Math.round` (Python rounds half to even)."""
    base = math.floor(value)
    if value - base >= 0.5:
        return float(base + 1)
    return float(base)


def compute_spike_offset_x(platform_width: float, rng: Mulberry32) -> float:
    position = _SPIKE_POSITIONS[math.floor(rng.random() * len(_SPIKE_POSITIONS))]
    if position == "left":
        return 0.0
    if position == "right":
        return js_round(platform_width - SPIKE_WIDTH * 2.0)
    return js_round(platform_width / 2.0 - SPIKE_WIDTH)


def generate_platform(y: float, difficulty: int, rng: Mulberry32) -> Platform:
    width = js_round(PLATFORM_MIN_WIDTH + rng.random() * (PLATFORM_MAX_WIDTH - PLATFORM_MIN_WIDTH))
    x = js_round(rng.random() * (CANVAS_WIDTH - width))
    spike_chance = min(0.4, difficulty * 0.05)
    # The draw happens even when difficulty rules spikes out.
    has_spikes = rng.random() < spike_chance and difficulty > 2
    spike_offset_x = compute_spike_offset_x(width, rng)
    return Platform(x=x, y=y, width=width, has_spikes=has_spikes, spike_offset_x=spike_offset_x)


def generate_initial_platforms(rng: Mulberry32) -> list[Platform]:
    start = Platform(x=CANVAS_WIDTH / 2.0 - 40.0, y=CANVAS_HEIGHT - 60.0, width=80.0)
    platforms = [start]
    spacing = CANVAS_HEIGHT / PLATFORM_COUNT
    for index in range(1, PLATFORM_COUNT):
        platforms.append(generate_platform(start.y - index * spacing, 0, rng))
    return platforms


def should_spawn_enemy(difficulty: int, rng: Mulberry32) -> bool:
    chance = min(0.3, difficulty * 0.03)
    return rng.random() < chance and difficulty > 3


def should_spawn_coin(rng: Mulberry32) -> bool:
    return rng.random() < 0.45


def generate_coin(platform: Platform, rng: Mulberry32) -> Coin:
    x = js_round(platform.x + rng.random() * (platform.width - COIN_SIZE))
    y = js_round(platform.y - 25.0 - rng.random() * 15.0)
    return Coin(x=x, y=y)
