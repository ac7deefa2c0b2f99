from __future__ import annotations

from dataclasses import dataclass, field

CANVAS_WIDTH = 320.0
CANVAS_HEIGHT = 480.0
GRAVITY = 0.35
JUMP_FORCE = -11.0
PLAYER_SIZE = 18.0
PLAYER_RUN_SPEED = 5.0
PLAYER_FRICTION = 0.85
PLATFORM_HEIGHT = 10.0
PLATFORM_MIN_WIDTH = 50.0
PLATFORM_MAX_WIDTH = 80.0
SPIKE_WIDTH = 8.0
SPIKE_HEIGHT = 10.0
ENEMY_SIZE = 16.0
ENEMY_SPEED = 1.2
PLATFORM_COUNT = 8
POINTS_PER_PLATFORM = 10
COIN_SIZE = 10.0
POINTS_PER_COIN = 1

# Off-screen margins before objects are recycled / the player counts as fallen.
RECYCLE_MARGIN = 50.0
FALL_MARGIN = 40.0
CAMERA_FOLLOW_RATIO = 0.4


@dataclass(slots=True)
class PlayerState:
    x: float = CANVAS_WIDTH / 2.0 - PLAYER_SIZE / 2.0
    y: float = CANVAS_HEIGHT - 80.0
    velocity_x: float = 0.0
    velocity_y: float = 0.0
    facing_right: bool = True


@dataclass(slots=True)
class Platform:
    x: float
    y: float
    width: float
    has_spikes: bool = False
    spike_offset_x: float = 0.0


@dataclass(slots=True)
class Enemy:
    x: float
    y: float
    direction: int
    platform_index: int


@dataclass(slots=True)
class Coin:
    x: float
    y: float
    collected: bool = False


@dataclass(slots=True)
class GameState:
    player: PlayerState = field(default_factory=PlayerState)
    platforms: list[Platform] = field(default_factory=list)
    enemies: list[Enemy] = field(default_factory=list)
    coins: list[Coin] = field(default_factory=list)
    score: int = 0
    max_height: float = 0.0
    camera_y: float = 0.0
    platforms_cleared: int = 0
    is_dead: bool = False
    is_paused: bool = False
    tick: int = 0


@dataclass(slots=True)
class TickEvents:
    jumped: bool = False
    died: bool = False
    coins_collected: int = 0
    score_changed: bool = False
