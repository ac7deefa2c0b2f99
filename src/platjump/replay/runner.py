from __future__ import annotations

from collections.abc import Sequence

from ..constants import MAX_GAME_TICKS, MAX_INPUT_EVENTS
from ..rand import Mulberry32
from ..sim.input import KeyState
from ..sim.step import advance_tick, create_initial_state
from .checkpoints import ReplayCheckpoint, build_checkpoint
from .types import InputEvent, ReplayResult


class ReplayRunnerError(ValueError):
    pass


def events_by_tick(events: Sequence[InputEvent], *, max_ticks: int) -> dict[int, list[InputEvent]]:
    """Group events by the tick they apply to, keeping array order inside a tick.

    Events at or past `max_ticks` can never be applied and are dropped here.
    """

    out: dict[int, list[InputEvent]] = {}
    for event in events:
        tick = int(event.tick)
        if tick >= max_ticks:
            continue
        out.setdefault(tick, []).append(event)
    return out


def replay_game(
    seed: int,
    events: Sequence[InputEvent],
    *,
    max_ticks: int = MAX_GAME_TICKS,
    max_events: int = MAX_INPUT_EVENTS,
    idle_tail_ticks: int | None = None,
    checkpoints_out: list[ReplayCheckpoint] | None = None,
    checkpoint_ticks: set[int] | None = None,
) -> ReplayResult:
    """Re-run a session headlessly from its seed and input log.

    Events for tick N are applied before tick N is simulated; events sharing a
    tick apply in the order given. The run stops on death (`total_ticks` is
    the index of the fatal tick plus one) or when `max_ticks` ticks have run.
    With `idle_tail_ticks`, it also stops that many ticks after the last
    applicable event, which bounds the cost of logs that never die.
    """

    if len(events) > int(max_events):
        raise ReplayRunnerError(f"too many input events: {len(events)} > {int(max_events)}")
    if int(max_ticks) < 0:
        raise ReplayRunnerError(f"invalid max_ticks: {max_ticks}")

    rng = Mulberry32(seed)
    state = create_initial_state(rng)
    keys = KeyState()
    buckets = events_by_tick(events, max_ticks=int(max_ticks))

    tick_limit = int(max_ticks)
    if idle_tail_ticks is not None:
        last_tick = max(buckets, default=-1)
        tick_limit = min(tick_limit, last_tick + 1 + max(0, int(idle_tail_ticks)))

    for tick_index in range(tick_limit):
        for event in buckets.get(tick_index, ()):
            keys.apply(event.key, bool(event.pressed))

        advance_tick(state, keys, rng)

        if checkpoints_out is not None and checkpoint_ticks is not None and tick_index in checkpoint_ticks:
            checkpoints_out.append(build_checkpoint(tick_index=tick_index, state=state, rng=rng))

        if state.is_dead:
            return ReplayResult(score=int(state.score), total_ticks=tick_index + 1, is_dead=True)

    return ReplayResult(score=int(state.score), total_ticks=tick_limit, is_dead=False)
