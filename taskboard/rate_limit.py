"""Per-client sliding-window rate limiter for the auth endpoints.

Each key (the client IP) may make `max_requests` calls in any `window`
seconds. Hits older than the window are dropped on every check, so the
limit recovers gradually rather than resetting at fixed boundaries.

Usage:
    limiter = SlidingWindowLimiter(max_requests=5, window=900)
    limiter.hit("203.0.113.7")   # raises TooManyRequests once exhausted
"""
import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from .errors import TooManyRequests


class SlidingWindowLimiter:
    def __init__(
        self,
        max_requests: int,
        window: float,
        message: str = "Too many attempts. Please try again after 15 minutes.",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window = window
        self.message = message
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()
        # Sync handlers run in a threadpool.
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def _sweep(self, now: float) -> None:
        # Drop clients whose hits have all aged out, at most once per window.
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._prune(key, now)

    def remaining(self, key: str) -> int:
        with self._lock:
            hits = self._prune(key, self._clock())
            return max(0, self.max_requests - len(hits))

    def hit(self, key: str) -> int:
        """Record one request for `key` and return how many remain in the window."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            hits = self._prune(key, now)
            if len(hits) >= self.max_requests:
                retry_after = max(1, math.ceil(self.window - (now - hits[0])))
                raise TooManyRequests(
                    self.message,
                    headers={
                        "Retry-After": str(retry_after),
                        "RateLimit-Limit": str(self.max_requests),
                        "RateLimit-Remaining": "0",
                    },
                )
            hits.append(now)
            self._hits[key] = hits
            return self.max_requests - len(hits)
