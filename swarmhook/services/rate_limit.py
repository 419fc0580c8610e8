"""Fixed-window rate limiter keyed by caller identity."""
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
import structlog
from ..clock import Clock

log = structlog.get_logger()


@dataclass(frozen=True)
class Admission:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime

    def retry_after(self, now: datetime) -> int:
        """Whole seconds until the window resets (at least 1)."""
        return max(1, math.ceil((self.reset_at - now).total_seconds()))


@dataclass
class _Window:
    count: int
    reset_at: datetime


class FixedWindowRateLimiter:
    """
    Counts requests per key in fixed windows.

    The first request for a key opens a window of ``window_seconds``; later
    requests in that window increment the count until ``limit`` is reached.
    Denied requests are not counted.
    """

    def __init__(self, limit: int, window_seconds: float = 60, clock: Clock | None = None):
        """
        Initialize rate limiter.

        Args:
            limit: Maximum requests allowed per window
            window_seconds: Window length in seconds
            clock: Time source
        """
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock or Clock()
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def admit(self, key: str) -> Admission:
        """Count a request for ``key`` and decide whether it may proceed."""
        now = self._clock.now()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + timedelta(seconds=self.window_seconds))
                self._windows[key] = window

            if window.count >= self.limit:
                admission = Admission(False, self.limit, 0, window.reset_at)
            else:
                window.count += 1
                admission = Admission(True, self.limit, self.limit - window.count, window.reset_at)

        if not admission.allowed:
            log.warning("rate_limit.exceeded", key=key, limit=self.limit, reset_at=admission.reset_at.isoformat())
        return admission

    def remaining(self, key: str) -> int:
        """Get number of remaining requests in the key's current window."""
        now = self._clock.now()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                return self.limit
            return max(0, self.limit - window.count)

    def sweep(self) -> int:
        """Drop windows that have elapsed."""
        now = self._clock.now()
        with self._lock:
            elapsed = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in elapsed:
                del self._windows[key]
        return len(elapsed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
