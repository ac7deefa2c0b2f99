from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from ..constants import SESSION_RATE_LIMIT_REQUESTS, SESSION_RATE_LIMIT_WINDOW_MS


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int


class SlidingWindowRateLimiter:
    """Allow at most `max_requests` per identifier within any `window_ms` span.

    Process-local: a multi-process deployment needs a shared limiter in front.
    Idle identifiers are swept at most once per window.
    """

    def __init__(
        self,
        *,
        now_ms: Callable[[], int],
        max_requests: int = SESSION_RATE_LIMIT_REQUESTS,
        window_ms: int = SESSION_RATE_LIMIT_WINDOW_MS,
    ) -> None:
        self.max_requests = int(max_requests)
        self.window_ms = int(window_ms)
        self._now_ms = now_ms
        self._lock = Lock()
        self._hits: dict[str, deque[int]] = {}
        self._last_sweep_ms = int(now_ms())

        self.total_requests = 0
        self.total_allowed = 0
        self.total_dropped = 0

    def _prune(self, hits: deque[int], cutoff: int) -> None:
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: int) -> None:
        if now - self._last_sweep_ms < self.window_ms:
            return
        self._last_sweep_ms = now
        cutoff = now - self.window_ms
        for key in list(self._hits):
            hits = self._hits[key]
            self._prune(hits, cutoff)
            if not hits:
                del self._hits[key]

    def check(self, identifier: str) -> RateLimitResult:
        with self._lock:
            now = int(self._now_ms())
            self._sweep(now)
            self.total_requests += 1

            hits = self._hits.setdefault(str(identifier), deque())
            self._prune(hits, now - self.window_ms)
            if len(hits) >= self.max_requests:
                self.total_dropped += 1
                return RateLimitResult(allowed=False, remaining=0)

            hits.append(now)
            self.total_allowed += 1
            return RateLimitResult(allowed=True, remaining=self.max_requests - len(hits))

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "tracked": len(self._hits),
                "total_requests": self.total_requests,
                "total_allowed": self.total_allowed,
                "total_dropped": self.total_dropped,
            }
