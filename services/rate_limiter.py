"""Per-client sliding-window request limiter."""

from __future__ import annotations

import math
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from utils.errors import RateLimitError


class SlidingWindowRateLimiter:
    """Allow at most `max_requests` accepted requests per client in any `window_seconds` span.

    State is process-local. Each check prunes the caller's bucket, and buckets
    of idle clients are swept at most once per window. The app keeps one
    instance on `app.state.rate_limiter`, so a shared implementation with the
    same `check()` method can replace it.
    """

    def __init__(self, max_requests: int = 10, window_seconds: float = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep: Optional[float] = None

    def _prune(self, client_id: str, now: float) -> Deque[float]:
        hits = self._hits.get(client_id)
        if hits is None:
            return deque()
        window_start = now - self.window_seconds
        while hits and hits[0] <= window_start:
            hits.popleft()
        if not hits:
            del self._hits[client_id]
            return deque()
        return hits

    def _sweep(self, now: float) -> None:
        """Drop the buckets of every client with no hit inside the window, at most once per window."""
        if self._last_sweep is not None and now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        window_start = now - self.window_seconds
        for client_id in [cid for cid, hits in self._hits.items() if hits[-1] <= window_start]:
            del self._hits[client_id]

    def check(self, client_id: str) -> None:
        """Record a request for `client_id` or raise `RateLimitError` with a retry hint."""
        now = self._clock()
        self._sweep(now)
        hits = self._prune(client_id, now)
        if len(hits) >= self.max_requests:
            retry_after = math.ceil(hits[0] + self.window_seconds - now)
            retry_after = min(max(retry_after, 1), math.ceil(self.window_seconds))
            raise RateLimitError("Too many requests. Please try again later.", retry_after=retry_after)
        hits.append(now)
        self._hits[client_id] = hits

    def remaining(self, client_id: str) -> int:
        return max(self.max_requests - len(self._prune(client_id, self._clock())), 0)
