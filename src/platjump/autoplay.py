from __future__ import annotations

from dataclasses import dataclass

from .constants import MAX_GAME_TICKS
from .rand import Mulberry32
from .replay.recorder import InputRecorder
from .replay.types import InputEvent, Replay, ReplayResult
from .sim.state_types import JUMP_FORCE, PLAYER_SIZE, SPIKE_WIDTH, GameState, Platform
from .sim.step import advance_tick, create_initial_state

# Horizontal distance (px) inside which the bot stops steering.
DEFAULT_DEAD_ZONE = 4.0
# A platform is a candidate once its top is this far above the player's feet.
_TARGET_CLEARANCE = 10.0


@dataclass(frozen=True, slots=True)
class AutoplayRun:
    seed: int
    events: list[InputEvent]
    result: ReplayResult

    def to_replay(self) -> Replay:
        return Replay(seed=int(self.seed), events=list(self.events), claimed_score=int(self.result.score))


def _pick_target(state: GameState) -> Platform | None:
    # Platforms are ordered bottom to top; the first one above the feet is the next step.
    feet = state.player.y + PLAYER_SIZE
    for platform in state.platforms:
        if platform.y - state.camera_y < feet - _TARGET_CLEARANCE:
            return platform
    return None


def _aim_x(platform: Platform) -> float:
    if not platform.has_spikes:
        return platform.x + platform.width / 2.0
    # Land on the wider side of the spike strip.
    spike_start = platform.x + platform.spike_offset_x
    spike_end = spike_start + SPIKE_WIDTH * 2.0
    left = spike_start - platform.x
    right = platform.x + platform.width - spike_end
    if left >= right:
        return platform.x + left / 2.0
    return spike_end + right / 2.0


def _still_present(state: GameState, platform: Platform) -> bool:
    return any(candidate is platform for candidate in state.platforms)


def autoplay(
    seed: int,
    *,
    max_ticks: int = MAX_GAME_TICKS,
    dead_zone: float = DEFAULT_DEAD_ZONE,
) -> AutoplayRun:
    """Play a session with a simple steering bot and record its inputs.

    The bot only ever holds one arrow key. It retargets after every bounce and
    whenever its platform scrolls away, and aims for the widest safe span.
    The recorded log replays to the same result through `replay_game`.
    """

    rng = Mulberry32(seed)
    state = create_initial_state(rng)
    recorder = InputRecorder()
    target: Platform | None = None
    held: str | None = None

    for _ in range(int(max_ticks)):
        if target is None or state.player.velocity_y == JUMP_FORCE or not _still_present(state, target):
            target = _pick_target(state)

        want: str | None = None
        if target is not None:
            center_x = state.player.x + PLAYER_SIZE / 2.0
            target_x = _aim_x(target)
            if target_x - center_x > dead_zone:
                want = "ArrowRight"
            elif center_x - target_x > dead_zone:
                want = "ArrowLeft"

        if want != held:
            if held is not None:
                recorder.record_key_up(held)
            if want is not None:
                recorder.record_key_down(want)
            held = want

        advance_tick(state, recorder.active_keys, rng)
        recorder.advance_tick()
        if state.is_dead:
            break

    result = ReplayResult(score=int(state.score), total_ticks=int(state.tick), is_dead=bool(state.is_dead))
    return AutoplayRun(seed=int(seed), events=recorder.events, result=result)
