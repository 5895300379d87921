"""Process-local storage backend used as the edge tier."""

import time
from collections import OrderedDict
from collections.abc import Callable

from swr_cache.cache.storage.base import StorageBackend


class MemoryStorage(StorageBackend):
    """Bounded in-memory store; oldest records are evicted first when full."""

    def __init__(self, max_entries: int = 10_000, clock: Callable[[], float] | None = None):
        """Initialize memory storage.

        Args:
            max_entries: Number of records kept before the oldest is evicted
            clock: Returns the current time as epoch seconds
        """
        self.max_entries = max_entries
        self.clock = clock or time.time
        # key -> (value, epoch expiry or None)
        self._records: OrderedDict[str, tuple[bytes, float | None]] = OrderedDict()

    async def get(self, key: str) -> bytes | None:
        record = self._records.get(key)
        if record is None:
            return None
        value, expires_at = record
        if expires_at is not None and self.clock() > expires_at:
            del self._records[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        expires_at = self.clock() + ttl if ttl else None
        self._records.pop(key, None)
        self._records[key] = (value, expires_at)
        while len(self._records) > self.max_entries:
            self._records.popitem(last=False)
        return True

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None
