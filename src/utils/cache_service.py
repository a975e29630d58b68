"""
In-Memory TTL Cache Service.

Short-lived caching for agent directory reads. Survives across warm Lambda
invocations; entries expire against the injected clock so tests can age them.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Optional

from utils.clock import Clock, SystemClock


class LRUCache:
    """Thread-safe LRU cache with TTL support."""

    def __init__(self, max_size: int = 100, ttl_seconds: int = 300, clock: Optional[Clock] = None):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SystemClock()
        self._cache: OrderedDict[str, tuple[Any, datetime]] = OrderedDict()
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if exists and not expired."""
        with self._lock:
            if key not in self._cache:
                return None

            value, stored_at = self._cache[key]

            if self.clock.now() - stored_at >= timedelta(seconds=self.ttl_seconds):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        """Set value in cache."""
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = (value, self.clock.now())

            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
