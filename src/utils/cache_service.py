"""
In-Memory LRU Cache Service.

Holds hot configuration (the admission policy) between warm Lambda
invocations and lets it expire so edits are picked up without a redeploy.
"""

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Optional


class LRUCache:
    """Thread-safe LRU cache with TTL support."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self._lock = Lock()

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if exists and not expired."""
        with self._lock:
            if key not in self._cache:
                return None

            value, stored_at = self._cache[key]
            if self._expired(stored_at):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        """Set value in cache."""
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = (value, self._clock())

            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value, calling ``loader`` on a miss.

        Loader exceptions propagate and nothing is cached for that key.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        self.set(key, value)
        return value

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
            }
