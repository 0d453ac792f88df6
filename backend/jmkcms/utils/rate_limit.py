"""In-memory rate limiter for the public contact form and admin login."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class InMemoryRateLimiter:
    """Fixed-window limiter per key (usually client host).

    State is per process; a multi-worker deployment gets one window per worker.
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str) -> tuple[bool, int]:
        """Record a hit for `key`; return `(allowed, retry_after_seconds)`."""
        if self.max_requests <= 0:
            return True, 0
        now = time.monotonic()
        with self._lock:
            q = self._hits[key]
            cutoff = now - self.window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= self.max_requests:
                return False, max(1, int(self.window_seconds - (now - q[0])))
            q.append(now)
        return True, 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
