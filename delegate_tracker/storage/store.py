"""
Partitioned store: durable per-address documents behind a shared TTL cache.

Reads are cache-aside: a live cache entry is served directly, otherwise the
durable document is read and cached. Writes are write-through: the durable
write happens first and the cache is only updated once it has succeeded, so
a failed write never leaves a value in the cache that storage does not have.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.exceptions import StorageException
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.storage.backend import FileStorage
from delegate_tracker.storage.cache import TTLCache

T = TypeVar("T")

logger = get_logger(__name__)


class PartitionedStore:
    """Byte-level document store with a write-through TTL cache."""

    def __init__(
        self,
        backend: FileStorage,
        cache: Optional[TTLCache[str, bytes]] = None,
        default_ttl: float = 60,
    ):
        self.backend = backend
        self.cache: TTLCache[str, bytes] = cache or TTLCache(default_ttl)
        self.default_ttl = default_ttl

    @staticmethod
    def cache_key(key: str, address: Optional[str] = None) -> str:
        """Cache keys are address-prefixed so partitions never collide."""
        return f"{normalize_address(address)}:{key}" if address else key

    async def read(
        self,
        key: str,
        address: Optional[str] = None,
        ttl: Optional[float] = None,
    ) -> Optional[bytes]:
        cache_key = self.cache_key(key, address)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await asyncio.to_thread(self.backend.read, key, address)
        if data is None:
            return None

        self.cache.set(cache_key, data, ttl if ttl is not None else self.default_ttl)
        return data

    async def write(
        self,
        key: str,
        data: bytes,
        address: Optional[str] = None,
        ttl: Optional[float] = None,
    ) -> None:
        cache_key = self.cache_key(key, address)
        # Durable first; a failure propagates and leaves the cache untouched
        await asyncio.to_thread(self.backend.write, key, data, address)
        self.cache.set(cache_key, data, ttl if ttl is not None else self.default_ttl)

    def invalidate(
        self, key: Optional[str] = None, address: Optional[str] = None
    ) -> None:
        """Drop cached entries for one key, one address, or everything."""
        if key is not None:
            self.cache.delete(self.cache_key(key, address))
        elif address is not None:
            self.cache.clear(prefix=f"{normalize_address(address)}:")
        else:
            self.cache.clear()


class Record(Generic[T]):
    """
    Typed accessor for one kind of document.

    Every record kind (metadata, timeline, votes, ...) goes through this one
    class so they share a single cache policy; only the codec and TTL differ.
    """

    def __init__(
        self,
        store: PartitionedStore,
        name: str,
        decode: Callable[[Any], T],
        encode: Callable[[T], Any],
        ttl: float,
    ):
        self.store = store
        self.name = name
        self._decode = decode
        self._encode = encode
        self.ttl = ttl

    async def load(self, address: Optional[str] = None) -> Optional[T]:
        raw = await self.store.read(self.name, address, ttl=self.ttl)
        if raw is None:
            return None
        try:
            return self._decode(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            # Corrupt documents surface as errors, never as "no data"
            self.store.invalidate(self.name, address)
            logger.error(f"Error parsing {self.name} for {address}: {e}")
            raise StorageException(
                f"Corrupt document {self.name}: {e}",
                key=self.name,
                address=address,
            ) from e

    async def save(self, value: T, address: Optional[str] = None) -> None:
        payload = json.dumps(self._encode(value), indent=2).encode("utf-8")
        await self.store.write(self.name, payload, address, ttl=self.ttl)
