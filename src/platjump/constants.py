"""Constants shared bit-for-bit with the browser client.

Changing any of these invalidates every in-flight session and every recorded
input log, so they are versioned together with `REPLAY_FORMAT_VERSION`.
"""

from __future__ import annotations

REPLAY_FORMAT_VERSION = 1

TICK_RATE = 60
TICK_MS = 1000.0 / TICK_RATE
MAX_GAME_TICKS = TICK_RATE * 60 * 30

# ~55 min at 60Hz with ~2 events per tick.
MAX_INPUT_EVENTS = 200_000
MAX_KEY_LENGTH = 20

SESSION_EXPIRY_MS = 30 * 60 * 1000
TIME_TOLERANCE_MS = 5000

MIN_SCORE = 0
MAX_SCORE = 99_999

MIN_NAME_LENGTH = 1
MAX_NAME_LENGTH = 30

SEED_RANGE = 2_147_483_647

TOP_SCORES_LIMIT = 10
SESSION_RATE_LIMIT_REQUESTS = 10
SESSION_RATE_LIMIT_WINDOW_MS = 60_000


def ticks_to_ms(ticks: int, *, tick_rate: int = TICK_RATE) -> float:
    """Simulated duration of `ticks` fixed steps, in milliseconds."""
    return float(ticks) / float(tick_rate) * 1000.0
