"""Sliding-window rate limiter for WebSocket message throttling."""

import time
from collections import deque


class SlidingWindowLimiter:
    """Allow at most ``limit`` messages in any ``window`` seconds.

    Keeps the timestamps of accepted messages; throttled messages are not
    recorded, so a client that backs off recovers as soon as the window slides.
    """

    def __init__(self, limit: int, window: float = 1.0) -> None:
        self._limit = limit
        self._window = window
        self._accepted: deque[float] = deque()

    def allow(self, now: float | None = None) -> bool:
        """Record one message. Returns False if it should be throttled."""
        now = time.monotonic() if now is None else now
        while self._accepted and now - self._accepted[0] >= self._window:
            self._accepted.popleft()
        if len(self._accepted) >= self._limit:
            return False
        self._accepted.append(now)
        return True
