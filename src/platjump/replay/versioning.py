from __future__ import annotations

import warnings

from ..sim.fingerprint import rules_fingerprint
from .types import Replay


class ReplayRulesWarning(UserWarning):
    """A replay file was recorded under different simulation constants."""


def rules_mismatch(replay: Replay, *, current_rules: str | None = None) -> str | None:
    """Describe why `replay` may not replay faithfully here, or return None.

    Replays written before the rules fingerprint existed carry an empty
    `rules` field; those are reported as unverifiable rather than mismatched.
    """

    expected = rules_fingerprint() if current_rules is None else str(current_rules)
    recorded = str(replay.rules)
    if not recorded:
        return f"replay does not record its simulation rules (current={expected})"
    if recorded != expected:
        return f"replay recorded under rules {recorded}, current rules are {expected}"
    return None


def warn_on_rules_mismatch(
    replay: Replay,
    *,
    action: str = "playback",
    current_rules: str | None = None,
) -> bool:
    """Emit a `ReplayRulesWarning` when the recorded rules differ; True if warned.

    Only replay files are checked. Scoreboard submissions are always replayed
    under the server's own rules, so there is nothing to compare them with.
    """

    problem = rules_mismatch(replay, current_rules=current_rules)
    if problem is None:
        return False
    warnings.warn(f"{problem}; {action} may diverge", category=ReplayRulesWarning, stacklevel=2)
    return True
