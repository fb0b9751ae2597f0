"""
In-memory caches: a TTL (time-to-live) cache and a size-bounded LRU cache.

TTL entries are never mutated after insertion: set() replaces the whole entry.
Expired entries are evicted lazily on the next read of that key rather than
swept by a background task.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheEntry(Generic[V]):
    """A cache entry with expiration time."""

    __slots__ = ("value", "expiry_time")

    def __init__(self, value: V, expiry_time: float):
        self.value = value
        self.expiry_time = expiry_time

    def is_expired(self, now: float) -> bool:
        """Check if this cache entry has expired."""
        return now > self.expiry_time


class TTLCache(Generic[K, V]):
    """Process-scoped TTL cache shared by all address partitions."""

    def __init__(
        self,
        default_ttl: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize TTL cache.

        Args:
            default_ttl: Default time-to-live in seconds
            clock: Time source, injectable for tests
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[K, CacheEntry[V]] = {}

    def get(self, key: K) -> Optional[V]:
        """Get value from cache if not expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Only drop the entry we looked at; a concurrent set may have replaced it
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        return entry.value

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        """Set value in cache with TTL, replacing any previous entry."""
        if ttl is None:
            ttl = self.default_ttl
        self._entries[key] = CacheEntry(value, self._clock() + ttl)

    def delete(self, key: K) -> None:
        """Delete a specific cache entry."""
        self._entries.pop(key, None)

    def clear(self, prefix: Optional[str] = None) -> None:
        """Clear all entries, or only string keys starting with prefix."""
        if prefix is None:
            self._entries.clear()
            return
        for key in [
            k
            for k in self._entries
            if isinstance(k, str) and k.startswith(prefix)
        ]:
            del self._entries[key]

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        now = self._clock()
        expired_entries = sum(
            1 for entry in self._entries.values() if entry.is_expired(now)
        )
        return {
            "total_entries": len(self._entries),
            "active_entries": len(self._entries) - expired_entries,
            "expired_entries": expired_entries,
        }


class LRUCache(Generic[K, V]):
    """
    Size-bounded cache; the least recently used entry is evicted first.

    Safe to share between worker threads.
    """

    def __init__(self, max_entries: int = 4096):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
