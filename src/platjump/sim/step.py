from __future__ import annotations

from collections.abc import Container
import math

from ..rand import Mulberry32
from .input import horizontal_intent
from .state_types import (
    CAMERA_FOLLOW_RATIO,
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    COIN_SIZE,
    ENEMY_SIZE,
    ENEMY_SPEED,
    FALL_MARGIN,
    GRAVITY,
    JUMP_FORCE,
    PLATFORM_COUNT,
    PLATFORM_HEIGHT,
    PLAYER_FRICTION,
    PLAYER_RUN_SPEED,
    PLAYER_SIZE,
    POINTS_PER_COIN,
    POINTS_PER_PLATFORM,
    RECYCLE_MARGIN,
    SPIKE_WIDTH,
    Enemy,
    GameState,
    PlayerState,
    TickEvents,
)
from .world_gen import generate_coin, generate_initial_platforms, generate_platform, should_spawn_coin, should_spawn_enemy


def create_initial_state(rng: Mulberry32) -> GameState:
    return GameState(player=PlayerState(), platforms=generate_initial_platforms(rng))


def _kill(state: GameState, events: TickEvents) -> TickEvents:
    state.is_dead = True
    events.died = True
    return events


def _apply_horizontal_input(player: PlayerState, active_keys: Container[str]) -> None:
    intent = horizontal_intent(active_keys)
    if intent < 0:
        player.velocity_x = -PLAYER_RUN_SPEED
        player.facing_right = False
    elif intent > 0:
        player.velocity_x = PLAYER_RUN_SPEED
        player.facing_right = True
    else:
        player.velocity_x *= PLAYER_FRICTION

    player.x += player.velocity_x
    if player.x + PLAYER_SIZE < 0.0:
        player.x = CANVAS_WIDTH
    if player.x > CANVAS_WIDTH:
        player.x = -PLAYER_SIZE


def _land_on_platforms(state: GameState, events: TickEvents) -> bool:
    """Bounce off every platform the falling player overlaps; True if a spike killed them."""
    player = state.player
    if player.velocity_y < 0.0:
        return False
    for platform in state.platforms:
        platform_screen_y = platform.y - state.camera_y
        if not (
            player.x + PLAYER_SIZE > platform.x + 2.0
            and player.x < platform.x + platform.width - 2.0
            and player.y + PLAYER_SIZE >= platform_screen_y
            and player.y + PLAYER_SIZE <= platform_screen_y + PLATFORM_HEIGHT + 6.0
        ):
            continue
        if platform.has_spikes:
            spike_start = platform.x + platform.spike_offset_x
            spike_end = spike_start + SPIKE_WIDTH * 2.0
            player_center = player.x + PLAYER_SIZE / 2.0
            if spike_start <= player_center <= spike_end:
                return True
        player.y = platform_screen_y - PLAYER_SIZE
        player.velocity_y = JUMP_FORCE
        events.jumped = True
    return False


def _touches_enemy(state: GameState) -> bool:
    player = state.player
    for enemy in state.enemies:
        enemy_screen_y = enemy.y - state.camera_y
        if (
            player.x + PLAYER_SIZE > enemy.x + 2.0
            and player.x < enemy.x + ENEMY_SIZE - 2.0
            and player.y + PLAYER_SIZE > enemy_screen_y + 2.0
            and player.y < enemy_screen_y + ENEMY_SIZE - 2.0
        ):
            return True
    return False


def _patrol_enemies(state: GameState) -> None:
    platforms = state.platforms
    for enemy in state.enemies:
        if not (0 <= enemy.platform_index < len(platforms)):
            continue
        parent = platforms[enemy.platform_index]
        enemy.x += ENEMY_SPEED * enemy.direction
        if enemy.x <= parent.x:
            enemy.direction = 1
        if enemy.x + ENEMY_SIZE >= parent.x + parent.width:
            enemy.direction = -1


def _collect_coins(state: GameState, events: TickEvents) -> None:
    player = state.player
    for coin in state.coins:
        if coin.collected:
            continue
        coin_screen_y = coin.y - state.camera_y
        if (
            player.x + PLAYER_SIZE > coin.x
            and player.x < coin.x + COIN_SIZE
            and player.y + PLAYER_SIZE > coin_screen_y
            and player.y < coin_screen_y + COIN_SIZE
        ):
            coin.collected = True
            state.score += POINTS_PER_COIN
            events.coins_collected += 1


def _follow_camera(state: GameState) -> None:
    player = state.player
    follow_line = CANVAS_HEIGHT * CAMERA_FOLLOW_RATIO
    if not (player.y < follow_line):
        return
    camera_delta = follow_line - player.y
    state.camera_y -= camera_delta
    player.y += camera_delta

    # Height score is floored per tick against the running maximum; the
    # browser client scores the same way, so keep it even though small
    # per-tick climbs never add up.
    new_height = abs(state.camera_y)
    if new_height > state.max_height:
        platforms_gained = math.floor((new_height - state.max_height) / (CANVAS_HEIGHT / PLATFORM_COUNT))
        state.score += platforms_gained * POINTS_PER_PLATFORM
        state.max_height = new_height


def _recycle_offscreen(state: GameState) -> None:
    platforms = state.platforms
    limit = CANVAS_HEIGHT + RECYCLE_MARGIN
    while platforms and platforms[0].y - state.camera_y > limit:
        platforms.pop(0)
        state.platforms_cleared += 1
        state.enemies = [enemy for enemy in state.enemies if enemy.platform_index > 0]
        for enemy in state.enemies:
            enemy.platform_index -= 1

    state.coins = [coin for coin in state.coins if not coin.collected and coin.y - state.camera_y <= limit]


def _top_up_platforms(state: GameState, rng: Mulberry32) -> None:
    platforms = state.platforms
    while len(platforms) < PLATFORM_COUNT:
        highest = platforms[-1]
        gap = 50.0 + rng.random() * 20.0
        difficulty = state.platforms_cleared
        platform = generate_platform(highest.y - gap, difficulty, rng)
        platforms.append(platform)

        if should_spawn_enemy(difficulty, rng):
            state.enemies.append(
                Enemy(
                    x=platform.x + platform.width / 2.0,
                    y=platform.y - ENEMY_SIZE,
                    direction=1 if rng.random() > 0.5 else -1,
                    platform_index=len(platforms) - 1,
                )
            )

        if should_spawn_coin(rng):
            state.coins.append(generate_coin(platform, rng))


def advance_tick(state: GameState, active_keys: Container[str], rng: Mulberry32) -> TickEvents:
    """Advance `state` by one fixed tick in place.

    Pure in (state, held keys, PRNG stream): no clocks, no unordered
    iteration. Dead or paused states are left untouched.
    """

    events = TickEvents()
    if state.is_dead or state.is_paused:
        return events

    state.tick += 1
    previous_score = state.score
    player = state.player

    _apply_horizontal_input(player, active_keys)

    player.velocity_y += GRAVITY
    player.y += player.velocity_y

    if _land_on_platforms(state, events):
        return _kill(state, events)

    if _touches_enemy(state):
        return _kill(state, events)

    _patrol_enemies(state)
    _collect_coins(state, events)
    _follow_camera(state)
    _recycle_offscreen(state)
    _top_up_platforms(state, rng)

    if player.y > CANVAS_HEIGHT + FALL_MARGIN:
        return _kill(state, events)

    events.score_changed = state.score != previous_score
    return events
