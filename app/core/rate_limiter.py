"""
Fixed-window rate limiter keyed by user id, built on `limits`.

One instance is owned by the FastAPI app (app.state.rate_limiter) and handed to
the chat handler as a dependency. Counters live in a `limits` MemoryStorage for
the process lifetime and are not shared between server instances.
"""

import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter as _FixedWindowStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of one admission check. retry_after is only meaningful when not allowed."""

    allowed: bool
    remaining: int
    retry_after: int = 0


class FixedWindowRateLimiter:
    """
    Allow at most max_requests per identity in each window of window_seconds.

    The window starts at the first request and expires window_seconds later;
    the first request at or after that moment opens a new one. Rejected
    requests do not move the window. At most `capacity` identities are
    tracked: the least recently seen one is forgotten when that is exceeded,
    and identities whose window has expired are dropped on access.
    """

    def __init__(self, max_requests: int, window_seconds: int, capacity: int = 5000) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.max_requests = max_requests
        self.window_seconds = int(window_seconds)
        self.capacity = capacity
        self._item = RateLimitItemPerSecond(max_requests, self.window_seconds, namespace="chat")
        self._storage = MemoryStorage()
        self._strategy = _FixedWindowStrategy(self._storage)
        # identities with a live window, least recently seen first
        self._recent: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._recent)

    def check(self, identity: str) -> AdmissionDecision:
        """Count one request for identity and decide whether it may proceed."""
        with self._lock:
            self._prune_expired()
            allowed = self._strategy.hit(self._item, identity)
            stats = self._strategy.get_window_stats(self._item, identity)
            self._touch(identity)

        if allowed:
            decision = AdmissionDecision(allowed=True, remaining=stats.remaining)
        else:
            retry_after = math.ceil(stats.reset_time - time.time())
            decision = AdmissionDecision(allowed=False, remaining=0, retry_after=max(retry_after, 0))

        logger.info(
            "[rate_limiter:check] identity=%s allowed=%s remaining=%d retry_after=%d",
            identity[:16], decision.allowed, decision.remaining, decision.retry_after,
        )
        return decision

    def peek(self, identity: str) -> int:
        """Return the remaining quota for identity without counting a request."""
        return self._strategy.get_window_stats(self._item, identity).remaining

    def reset(self, identity: str | None = None) -> None:
        """Forget one identity's window, or every window when identity is None."""
        with self._lock:
            if identity is None:
                self._storage.reset()
                self._recent.clear()
            else:
                self._strategy.clear(self._item, identity)
                self._recent.pop(identity, None)

    def _touch(self, identity: str) -> None:
        # Caller holds the lock.
        self._recent[identity] = None
        self._recent.move_to_end(identity)
        while len(self._recent) > self.capacity:
            evicted, _ = self._recent.popitem(last=False)
            self._strategy.clear(self._item, evicted)
            logger.info("[rate_limiter:evict] capacity=%d evicted=%s", self.capacity, evicted[:16])

    def _prune_expired(self) -> None:
        # Caller holds the lock. A tracked identity back at full quota has no live window.
        while self._recent:
            identity = next(iter(self._recent))
            if self.peek(identity) < self.max_requests:
                break
            del self._recent[identity]
