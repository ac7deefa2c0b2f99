from __future__ import annotations

from .codec import ReplayCodecError, dump_replay, dump_replay_file, load_replay, load_replay_file
from .recorder import InputRecorder
from .runner import ReplayRunnerError, replay_game
from .types import InputEvent, Replay, ReplayResult
from .versioning import ReplayRulesWarning, rules_mismatch, warn_on_rules_mismatch

__all__ = [
    "InputEvent",
    "InputRecorder",
    "Replay",
    "ReplayCodecError",
    "ReplayResult",
    "ReplayRunnerError",
    "ReplayRulesWarning",
    "dump_replay",
    "dump_replay_file",
    "load_replay",
    "load_replay_file",
    "replay_game",
    "rules_mismatch",
    "warn_on_rules_mismatch",
]
