"""
In-memory fixed-window rate limiting.

Each limiter is a FastAPI dependency keyed by client IP. Counters live in
process memory, so limits are per worker.
"""

import logging
import time
from threading import Lock
from typing import Callable

from fastapi import Request

from .errors import RateLimitedError

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60


class FixedWindowLimiter:
    """Allow `limit` hits per key per `window_seconds`."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, dict] = {}
        self._lock = Lock()
        self._last_cleanup = 0

    def hit(self, key: str) -> tuple[bool, int, int]:
        """
        Record one hit for key.

        Returns:
            (allowed, remaining, reset_at_epoch_seconds)
        """
        now = int(self._clock())
        with self._lock:
            self._maybe_cleanup(now)
            window = self._windows.get(key)
            if window is None or now >= window["reset_time"]:
                window = {"count": 0, "reset_time": now + self.window_seconds}
                self._windows[key] = window

            window["count"] += 1
            remaining = max(0, self.limit - window["count"])
            return window["count"] <= self.limit, remaining, window["reset_time"]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def _maybe_cleanup(self, now: int) -> None:
        # Lazy sweep of expired windows, only on access
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._windows = {k: w for k, w in self._windows.items() if w["reset_time"] > now}
        self._last_cleanup = now


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str):
    """Build a dependency that raises 429 once the IP exceeds its budget."""
    limiter = FixedWindowLimiter(limit, window_seconds)

    async def dependency(request: Request) -> None:
        key = f"{key_prefix}:{get_client_ip(request)}"
        allowed, _, reset_at = limiter.hit(key)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key_prefix} (resets at {reset_at})")
            raise RateLimitedError()

    dependency.limiter = limiter
    return dependency
