"""
Fixed-window request rate limiter.

One limiter instance is created per process and injected into the request
handlers. Each client key gets a counter that resets when its window
expires; a rejected request never starts any agent or sandbox work.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per ``window_seconds`` for each client key."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def _prune(self, now: float) -> None:
        """Drop expired windows so idle clients do not accumulate."""
        if now - self._last_prune < self.window_seconds:
            return
        expired = [key for key, w in self._windows.items() if now - w.started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_prune = now

    def allow(self, key: str) -> bool:
        """Count a request for ``key``; return False if it exceeds the budget."""
        with self._lock:
            now = self._clock()
            self._prune(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now)
                self._windows[key] = window

            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def check(self, key: str) -> None:
        """Like ``allow`` but raises ``RateLimitExceeded``."""
        if not self.allow(key):
            logger.warning(f"[{key}] Rate limit exceeded ({self.max_requests}/{self.window_seconds:g}s)")
            raise RateLimitExceeded(self.max_requests, self.window_seconds)
