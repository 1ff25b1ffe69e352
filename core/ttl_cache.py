# core/ttl_cache.py
"""
Process-local memoization with a time-to-live.

Used for the three pieces of shared state in the registration flow:
the Google service credential (+ API clients), the per-sheet dedup index and
the pooled mail transport. Entries are replaced wholesale on expiry, never
patched in place, and are not shared between processes.

Each cache takes an injectable ``clock`` so tests can move time forward and
call ``invalidate()`` in setUp to avoid cross-test pollution.
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


_MISSING = object()


class TTLCache:
    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic, name: str = ""):
        self.ttl = ttl
        self.clock = clock
        self.name = name
        self._entries: Dict[Any, Tuple[Any, float]] = {}
        self._lock = threading.RLock()

    def get(self, key, default=None):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key, value, ttl: Optional[float] = None, expires_at: Optional[float] = None):
        """
        Store ``value`` under ``key``.

        ``expires_at`` (on this cache's clock) wins over ``ttl``; used when the
        value carries its own expiry, e.g. an OAuth access token.
        """
        if expires_at is None:
            expires_at = self.clock() + (self.ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)
        return value

    def invalidate(self, key=_MISSING):
        """Drop one key, or every key when called without arguments."""
        with self._lock:
            if key is _MISSING:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def get_or_create(self, key, factory: Callable[[], Any], ttl: Optional[float] = None):
        with self._lock:
            value = self.get(key, _MISSING)
            if value is _MISSING:
                value = self.set(key, factory(), ttl=ttl)
            return value

    def expires_in(self, key) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return entry[1] - self.clock()

    def __contains__(self, key):
        return self.get(key, _MISSING) is not _MISSING
