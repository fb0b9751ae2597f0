from delegate_tracker.storage.backend import FileStorage
from delegate_tracker.storage.cache import LRUCache, TTLCache
from delegate_tracker.storage.store import PartitionedStore, Record

__all__ = ["FileStorage", "LRUCache", "TTLCache", "PartitionedStore", "Record"]
