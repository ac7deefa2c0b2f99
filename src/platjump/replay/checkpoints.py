from __future__ import annotations

import gzip
import zlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import msgspec

from ..rand import Mulberry32
from ..sim.fingerprint import fingerprint_state
from ..sim.state_types import GameState

FORMAT_VERSION = 1


class ReplayCheckpointsError(ValueError):
    pass


class ReplayCheckpoint(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    tick_index: int
    rng_state: int
    score: int
    max_height: float
    camera_y: float
    platforms_cleared: int
    is_dead: bool
    state_hash: str


class ReplayCheckpoints(msgspec.Struct, forbid_unknown_fields=True):
    version: int
    replay_sha256: str
    sample_rate: int
    checkpoints: list[ReplayCheckpoint] = msgspec.field(default_factory=list)


def default_checkpoints_path(replay_path: Path) -> Path:
    replay_path = Path(replay_path)
    name = replay_path.name
    if name.endswith(".json.gz"):
        stem = name[: -len(".json.gz")]
        return replay_path.with_name(f"{stem}.checkpoints.json.gz")
    return replay_path.with_name(f"{name}.checkpoints.json.gz")


def build_checkpoint(*, tick_index: int, state: GameState, rng: Mulberry32) -> ReplayCheckpoint:
    return ReplayCheckpoint(
        tick_index=int(tick_index),
        rng_state=int(rng.state),
        score=int(state.score),
        max_height=float(state.max_height),
        camera_y=float(state.camera_y),
        platforms_cleared=int(state.platforms_cleared),
        is_dead=bool(state.is_dead),
        state_hash=f"{fingerprint_state(state):016x}",
    )


def sample_ticks(total_ticks: int, sample_rate: int) -> set[int]:
    """Tick indices to checkpoint: every `sample_rate`-th tick plus the last one."""
    rate = max(1, int(sample_rate))
    ticks = set(range(0, int(total_ticks), rate))
    if total_ticks > 0:
        ticks.add(int(total_ticks) - 1)
    return ticks


def dump_checkpoints(checkpoints: ReplayCheckpoints) -> bytes:
    raw = msgspec.json.encode(checkpoints, order="sorted")
    return gzip.compress(raw, compresslevel=9, mtime=0)


def load_checkpoints(data: bytes) -> ReplayCheckpoints:
    if data.startswith(b"\x1f\x8b"):
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise ReplayCheckpointsError(f"corrupt gzip stream: {exc}") from exc
    try:
        out = msgspec.json.decode(data, type=ReplayCheckpoints)
    except msgspec.DecodeError as exc:
        raise ReplayCheckpointsError(str(exc)) from exc
    if int(out.version) != FORMAT_VERSION:
        raise ReplayCheckpointsError(f"unsupported checkpoints version: {out.version}")
    return out


def dump_checkpoints_file(path: Path, checkpoints: ReplayCheckpoints) -> None:
    Path(path).write_bytes(dump_checkpoints(checkpoints))


def load_checkpoints_file(path: Path) -> ReplayCheckpoints:
    return load_checkpoints(Path(path).read_bytes())


@dataclass(frozen=True, slots=True)
class ReplayDiffFailure:
    kind: str
    tick_index: int
    expected: ReplayCheckpoint
    actual: ReplayCheckpoint | None = None
    fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class ReplayDiffResult:
    ok: bool
    checked_count: int
    failure: ReplayDiffFailure | None = None


_COMPARED_FIELDS = ("rng_state", "score", "max_height", "camera_y", "platforms_cleared", "is_dead")


def compare_checkpoints(
    expected: Sequence[ReplayCheckpoint],
    actual: Sequence[ReplayCheckpoint],
) -> ReplayDiffResult:
    """Find the first tick where `actual` diverges from `expected`."""

    actual_by_tick = {int(ckpt.tick_index): ckpt for ckpt in actual}
    checked_count = 0

    for exp in sorted(expected, key=lambda ckpt: int(ckpt.tick_index)):
        checked_count += 1
        tick = int(exp.tick_index)
        act = actual_by_tick.get(tick)
        if act is None:
            return ReplayDiffResult(
                ok=False,
                checked_count=checked_count,
                failure=ReplayDiffFailure(kind="missing_checkpoint", tick_index=tick, expected=exp),
            )
        if exp.state_hash == act.state_hash:
            continue
        mismatched = tuple(name for name in _COMPARED_FIELDS if getattr(exp, name) != getattr(act, name))
        return ReplayDiffResult(
            ok=False,
            checked_count=checked_count,
            failure=ReplayDiffFailure(
                kind="state_mismatch",
                tick_index=tick,
                expected=exp,
                actual=act,
                fields=mismatched,
            ),
        )

    return ReplayDiffResult(ok=True, checked_count=checked_count)
