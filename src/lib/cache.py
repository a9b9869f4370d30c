"""
Small in-process TTL cache.
Used for recent-call listings fetched from the voice-AI platform.
"""

import time
from threading import Lock
from typing import Any, Callable, Optional

CLEANUP_INTERVAL_SECONDS = 300


class TTLCache:
    """Key/value cache where each entry expires after its own TTL."""

    def __init__(self, default_ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = Lock()
        self._last_cleanup = clock()

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if now >= expires_at:
                del self._entries[key]
                return None
            return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _maybe_cleanup(self, now: float) -> None:
        # Lazy sweep, only on access
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._entries = {k: v for k, v in self._entries.items() if v[1] > now}
        self._last_cleanup = now
