"""In-memory TTL cache for anonymous aggregate responses."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

CACHE_TTL = {
    "feed": 120,
    "venue": 300,
    "search": 300,
}
DEFAULT_MAX_ENTRIES = 500
COORDINATE_PRECISION = 3


class ResponseCache:
    """Thread-safe key/value store where each entry expires after its own TTL."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                _, expires_at, value = entry
                if self._clock() < expires_at:
                    self.hits += 1
                    return value
                del self._entries[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict()
            now = self._clock()
            self._entries[key] = (now, now + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": round(self.hits / total * 100, 1) if total else 0.0,
            }

    def _evict(self) -> None:
        # Caller holds the lock. Expired entries go first, then the oldest fifth.
        now = self._clock()
        for key in [k for k, (_, expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            oldest = sorted(self._entries, key=lambda k: self._entries[k][0])
            for key in oldest[: max(1, len(oldest) // 5)]:
                del self._entries[key]


def make_key(prefix: str, params: Mapping[str, Any]) -> str:
    parts = [f"{name}={params[name]}" for name in sorted(params) if params[name] is not None]
    return f"{prefix}:" + "&".join(parts)


def normalize_feed_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Round coordinates so nearby callers share an entry."""
    normalized = dict(params)
    for name in ("latitude", "longitude"):
        if normalized.get(name) is not None:
            normalized[name] = round(float(normalized[name]), COORDINATE_PRECISION)
    return normalized


feed_cache = ResponseCache()
detail_cache = ResponseCache()
search_cache = ResponseCache()
