"""Thread-safe cache for pairwise travel distances."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from ...config import settings

CacheKey = tuple[str, float, float, float, float]


def cache_key(profile: str, origin: tuple[float, float], destination: tuple[float, float]) -> CacheKey:
    return (
        profile,
        round(origin[0], 6),
        round(origin[1], 6),
        round(destination[0], 6),
        round(destination[1], 6),
    )


class DistanceCache:
    """Pairwise (distance meters, duration seconds) cache with TTL and size bound.

    Oldest entries are evicted first once ``max_entries`` is reached.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.distance_cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.distance_cache_max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, tuple[float, float, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(
        self, profile: str, origin: tuple[float, float], destination: tuple[float, float]
    ) -> Optional[tuple[float, float]]:
        key = cache_key(profile, origin, destination)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            distance, duration, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return distance, duration

    def put(
        self,
        profile: str,
        origin: tuple[float, float],
        destination: tuple[float, float],
        distance: float,
        duration: float,
    ) -> None:
        key = cache_key(profile, origin, destination)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (distance, duration, self._clock())
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
