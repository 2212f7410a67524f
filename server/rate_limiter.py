"""Sliding-window request limiter keyed by client identifier."""
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

logger = logging.getLogger(__name__)

MAX_TRACKED_IDENTIFIERS = 10000


class RateLimiter:
    """Allow at most ``max_requests`` per ``window_seconds`` per identifier.

    All calls happen on the event loop, so no locking is needed.
    """

    def __init__(self, max_requests: int = 100, window_seconds: float = 900.0) -> None:
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self.max_requests = max(max_requests, 1)
        self.window_seconds = window_seconds

    def _prune(self, identifier: str, now: float) -> Deque[float]:
        hits = self._hits[identifier]
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def check(self, identifier: str, now: Optional[float] = None) -> bool:
        """Record a request and return False if the identifier is over budget."""
        now = time.monotonic() if now is None else now
        if len(self._hits) > MAX_TRACKED_IDENTIFIERS:
            self.cleanup_old_identifiers(now)
        hits = self._prune(identifier, now)
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def remaining(self, identifier: str, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        return max(0, self.max_requests - len(self._prune(identifier, now)))

    def retry_after(self, identifier: str, now: Optional[float] = None) -> int:
        """Seconds until the oldest recorded request leaves the window."""
        now = time.monotonic() if now is None else now
        hits = self._prune(identifier, now)
        if not hits:
            return 0
        return max(1, int(hits[0] + self.window_seconds - now) + 1)

    def cleanup_old_identifiers(self, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        stale = [key for key in list(self._hits) if not self._prune(key, now)]
        for key in stale:
            self._hits.pop(key, None)
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate-limit identifiers")
        return len(stale)

    def reset(self) -> None:
        self._hits.clear()
