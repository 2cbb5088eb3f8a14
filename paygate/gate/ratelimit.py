# paygate/gate/ratelimit.py
"""
Rate limiting for the payment gate.

This module provides IP-based rate limiting to protect the service from abuse.
Uses a fixed window algorithm with an injectable store (in-memory by default).

Configuration:
- RATE_LIMIT_PER_IP: Maximum requests per window per IP (default: 60)
- RATE_LIMIT_WINDOW_SECONDS: Window length in seconds (default: 60)

Rate limiting is applied BEFORE claim extraction and payment verification,
and does no I/O.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

from paygate.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Request count for a single client within the current fixed window."""
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a rate limit check."""
    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int = 0


class RateLimitStore(Protocol):
    """Storage for rate windows. increment_and_check must not suspend."""

    def increment_and_check(self, key: str, now: float, window_seconds: float) -> Tuple[int, float]:
        """
        Count one request for key, starting a new window if needed.

        Returns:
            Tuple of (count_in_window, window_start)
        """
        ...


class InMemoryRateLimitStore:
    """
    Process-local fixed-window store.

    Thread-safe for concurrent access. Stale windows (expired and unused for
    one more window) are evicted lazily, at most once per window.
    """

    def __init__(self):
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._last_cleanup = 0.0

    def increment_and_check(self, key: str, now: float, window_seconds: float) -> Tuple[int, float]:
        with self._lock:
            self._maybe_cleanup(now, window_seconds)

            window = self._windows.get(key)
            if window is None or now >= window.window_start + window_seconds:
                window = RateWindow(window_start=now)
                self._windows[key] = window

            window.count += 1
            return (window.count, window.window_start)

    def __len__(self) -> int:
        return len(self._windows)

    def reset_all(self) -> None:
        with self._lock:
            self._windows.clear()

    def _maybe_cleanup(self, now: float, window_seconds: float) -> None:
        # Caller holds the lock
        if now - self._last_cleanup < window_seconds:
            return

        self._last_cleanup = now
        stale_keys = [
            key for key, window in self._windows.items()
            if now >= window.window_start + 2 * window_seconds
        ]
        for key in stale_keys:
            del self._windows[key]

        if stale_keys:
            logger.debug(f"Cleaned up {len(stale_keys)} stale rate limit entries")


class RateLimiter:
    """
    Fixed window rate limiter keyed by client identity.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        requests_per_window: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock=time.time,
    ):
        """
        Initialize the rate limiter.

        Args:
            store: Window store. Defaults to a new InMemoryRateLimitStore.
            requests_per_window: Max requests allowed per window. If None, uses config.
            window_seconds: Size of the window in seconds. If None, uses config.
            clock: Callable returning the current time in seconds.
        """
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._requests_per_window = requests_per_window
        self._window_seconds = window_seconds
        self._clock = clock

    @property
    def limit(self) -> int:
        """Get the rate limit (lazy load from settings if not set)."""
        if self._requests_per_window is not None:
            return self._requests_per_window
        return settings.RATE_LIMIT_PER_IP

    @property
    def window_seconds(self) -> int:
        """Get the window size (lazy load from settings if not set)."""
        if self._window_seconds is not None:
            return self._window_seconds
        return settings.RATE_LIMIT_WINDOW_SECONDS

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def admit(self, client_id: str) -> RateDecision:
        """
        Count a request from client_id and decide whether to admit it.

        Args:
            client_id: The client's identity (source IP)

        Returns:
            RateDecision; when denied, retry_after_seconds is the time left
            in the current window, rounded up to whole seconds.
        """
        now = self._clock()
        limit = self.limit
        window_seconds = self.window_seconds

        count, window_start = self._store.increment_and_check(client_id or "unknown", now, window_seconds)

        if count > limit:
            window_end = window_start + window_seconds
            retry_after = max(1, math.ceil(window_end - now))
            logger.warning(
                f"Rate limit exceeded for {client_id}: "
                f"{count}/{limit} requests in {window_seconds}s, retry after {retry_after}s"
            )
            return RateDecision(allowed=False, count=count, limit=limit, retry_after_seconds=retry_after)

        return RateDecision(allowed=True, count=count, limit=limit)


def get_rate_limit_headers(decision: RateDecision) -> Dict[str, str]:
    """
    Generate rate limit headers for HTTP responses.

    Args:
        decision: Result of RateLimiter.admit

    Returns:
        Dict of HTTP headers to add to the response
    """
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(max(0, decision.limit - decision.count)),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers
