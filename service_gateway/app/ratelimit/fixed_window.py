"""
Fixed-window rate limiter for Gateway service.

Counters live in process memory and are not shared between gateway
instances. A burst straddling a window boundary can admit up to twice the
limit.
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger


@dataclass
class RateLimitEntry:
    """Counter state for one identifier."""
    identifier: str
    count: int
    window_reset_at: int  # epoch milliseconds


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds
    limit: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Whole seconds until the window resets, rounded up and never below one."""
        return max(1, -(-(self.reset_at - now_ms) // 1000))


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitStore:
    """Per-identifier counters owned by one limiter instance."""

    def __init__(self):
        self.entries: Dict[str, RateLimitEntry] = {}
        self.lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, identifier: str) -> Optional[RateLimitEntry]:
        return self.entries.get(identifier)


class FixedWindowRateLimiter:
    """Fixed-window counter limiter keyed by client IP or app name."""

    def __init__(
        self,
        max_requests: int = 100,
        window_ms: int = 60000,
        *,
        store: Optional[RateLimitStore] = None,
        sweep_probability: float = 0.01,
        clock: Callable[[], int] = _now_ms,
        rng: Callable[[], float] = random.random,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")

        self.max_requests = max_requests
        self.window_ms = window_ms
        self.store = store if store is not None else RateLimitStore()
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng
        self.logger = get_logger("gateway.rate_limiter")

    def now(self) -> int:
        return self._clock()

    def check(self, identifier: str) -> RateLimitResult:
        """Count one request for ``identifier`` and decide whether it may pass."""
        now = self._clock()

        if self.sweep_probability > 0 and self._rng() < self.sweep_probability:
            self.sweep(now)

        with self.store.lock:
            entry = self.store.entries.get(identifier)

            if entry is None or now > entry.window_reset_at:
                entry = RateLimitEntry(identifier, 1, now + self.window_ms)
                self.store.entries[identifier] = entry
                return RateLimitResult(True, self.max_requests - 1, entry.window_reset_at, self.max_requests)

            if entry.count >= self.max_requests:
                return RateLimitResult(False, 0, entry.window_reset_at, self.max_requests)

            entry.count += 1
            return RateLimitResult(
                True,
                self.max_requests - entry.count,
                entry.window_reset_at,
                self.max_requests,
            )

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop entries whose window has already expired; returns the count removed."""
        now = self._clock() if now is None else now
        with self.store.lock:
            expired = [key for key, entry in self.store.entries.items() if now > entry.window_reset_at]
            for key in expired:
                del self.store.entries[key]

        if expired:
            self.logger.debug("Rate limit entries swept", removed=len(expired), remaining=len(self.store))
        return len(expired)

    def reset(self, identifier: str) -> bool:
        """Forget the counter for ``identifier``."""
        with self.store.lock:
            return self.store.entries.pop(identifier, None) is not None
