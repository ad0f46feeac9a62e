"""
Process-local TTL cache for analytics responses.

Entries expire a fixed number of seconds after they are written. The map is
bounded; when full, the oldest entry is evicted first.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from healthtrack.core.config import settings

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self, ttl_seconds: float, max_entries: int = 1024, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock(), value)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached analytics entries for {prefix!r}")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


analytics_cache = TTLCache(
    ttl_seconds=settings.ANALYTICS_CACHE_TTL_SECONDS,
    max_entries=settings.ANALYTICS_CACHE_MAX_ENTRIES,
)
