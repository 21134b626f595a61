"""Blockbrief Backend - In-memory result cache with TTL"""

import time
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("blockbrief.cache")


class TTLCache:
    """In-memory cache with per-key TTL.

    Expired entries are evicted lazily on the next read of that key; nothing
    sweeps the store in the background and there is no size bound, so the key
    space must stay moderate (one process, keys scoped by block and window).

    ``get_or_compute`` is not single-flight: two concurrent misses on the same
    key both run the loader and the later one wins. Once stored, a value is
    served to every caller until it expires.
    """

    def __init__(self, default_ttl: int = 900, clock: Callable[[], float] = time.monotonic):
        self._store: dict[str, tuple[Any, float]] = {}
        self._default_ttl = default_ttl
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        expires_at = self._clock() + (ttl if ttl is not None else self._default_ttl)
        self._store[key] = (value, expires_at)

    async def get_or_compute(self, key: str, ttl: Optional[int], loader: Callable[[], Awaitable[Any]]) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached
        value = await loader()
        self.set(key, value, ttl)
        return value

    def clear(self):
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
