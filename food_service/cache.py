"""In-process TTL cache used cache-aside by the catalog.

Callers read through ``cached`` and invalidate by key prefix themselves, so
every invalidation point is visible at the call site.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from food_service.config import CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if len(self._entries) >= self.max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (value, self._clock() + ttl)

    def invalidate(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Invalidated %s cache entries with prefix %r", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]:
            del self._entries[key]
        # Still full: drop the entry closest to expiry
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]


def make_key(prefix: str, **params) -> str:
    parts = "|".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{prefix}:{parts}"


async def cached(cache: Optional[TTLCache], key: str, ttl: float, loader: Callable[[], Awaitable[Any]]) -> Any:
    if cache is None:
        return await loader()
    value = cache.get(key, _MISSING)
    if value is not _MISSING:
        return value
    value = await loader()
    cache.set(key, value, ttl)
    return value
