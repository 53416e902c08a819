"""Token-bucket rate limiter shared by all enrichment workers."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class RateLimiter:
    """Continuous-refill token bucket.

    Tokens accrue at ``rate_per_second`` up to ``burst``. ``acquire`` takes one
    token, blocking the calling thread until one is available. Safe to share
    across threads; one instance represents one global budget.
    """

    def __init__(
        self,
        rate_per_second: float,
        burst: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = float(rate_per_second)
        self.burst = burst
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._last_refill = clock()

    @classmethod
    def per_minute(cls, requests_per_minute: float, burst: int = 1) -> RateLimiter:
        return cls(requests_per_minute / 60.0, burst)

    def acquire(self, cancel: threading.Event | None = None) -> bool:
        """Take one token. Returns False if ``cancel`` was set before one was granted."""
        while True:
            if cancel is not None and cancel.is_set():
                return False

            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return True
                wait_seconds = (1.0 - self._tokens) / self.rate

            if cancel is not None:
                if cancel.wait(wait_seconds):
                    return False
            else:
                time.sleep(wait_seconds)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last_refill = now
