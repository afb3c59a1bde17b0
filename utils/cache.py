"""
In-memory TTL cache with an injectable clock.

Used for scoring weights, AI package analyses, comparisons and similarity
groupings. Each service owns its own instance so tests can run isolated
caches side by side and move time forward by swapping the clock.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional


class TTLCache:
    """Thread-safe in-memory cache with TTL expiration."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_size: int = 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._ttl_seconds = ttl_seconds
        self._max_size = max_size
        self._clock = clock or time.time
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._clock() >= entry["expires_at"]:
                del self._cache[key]
                return None
            return entry["value"]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            if len(self._cache) >= self._max_size and key not in self._cache:
                self._evict_oldest()
            now = self._clock()
            self._cache[key] = {
                "value": value,
                "expires_at": now + (ttl if ttl is not None else self._ttl_seconds),
                "created_at": now,
            }

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _evict_oldest(self) -> None:
        if not self._cache:
            return
        oldest_key = min(self._cache, key=lambda k: self._cache[k]["created_at"])
        del self._cache[oldest_key]

    def cleanup_expired(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._cache.items() if now >= e["expires_at"]]
            for key in expired:
                del self._cache[key]
            return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            active = sum(1 for e in self._cache.values() if now < e["expires_at"])
            return {
                "total_entries": len(self._cache),
                "active_entries": active,
                "expired_entries": len(self._cache) - active,
                "max_size": self._max_size,
                "ttl_seconds": self._ttl_seconds,
            }

    def __len__(self) -> int:
        return len(self._cache)


class ManualClock:
    """Settable clock for deterministic cache and scheduler tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
