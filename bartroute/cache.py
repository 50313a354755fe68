from __future__ import annotations

import copy
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypedDict


DEFAULT_TTL_SECONDS = 30.0


class CacheStats(TypedDict):
    last_updated: Optional[int]
    last_error: Optional[str]
    last_error_at: Optional[int]
    fetch_count: int
    error_count: int


class Cache:
    """Key/value store where every entry carries its own expiry.

    Expired entries are evicted lazily when read. Per-key bookkeeping (last
    success, last error, counters) outlives eviction so health reporting can
    see it.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._stats: Dict[str, CacheStats] = {}
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    def _ensure_stats(self, key: str) -> CacheStats:
        if key not in self._stats:
            self._stats[key] = {
                "last_updated": None,
                "last_error": None,
                "last_error_at": None,
                "fetch_count": 0,
                "error_count": 0,
            }
        return self._stats[key]

    def set(self, key: str, data: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        now = self._clock()
        stored = copy.deepcopy(data)
        with self._lock:
            self._entries[key] = (stored, now + ttl)
            stats = self._ensure_stats(key)
            stats["last_updated"] = int(now)
            stats["last_error"] = None
            stats["last_error_at"] = None
            stats["fetch_count"] += 1

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if now >= expires_at:
                del self._entries[key]
                return None
        return copy.deepcopy(data)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def record_error(self, key: str, error: str) -> None:
        now = int(self._clock())
        with self._lock:
            stats = self._ensure_stats(key)
            stats["last_error"] = error
            stats["last_error_at"] = now
            stats["error_count"] += 1

    def get_all_metadata(self) -> Dict[str, CacheStats]:
        with self._lock:
            return {
                key: {
                    "last_updated": stats["last_updated"],
                    "last_error": stats["last_error"],
                    "last_error_at": stats["last_error_at"],
                    "fetch_count": stats["fetch_count"],
                    "error_count": stats["error_count"],
                }
                for key, stats in self._stats.items()
            }
