"""Abstract cache engine and Cache-Control helpers shared by engines."""

import logging
from abc import ABC, abstractmethod

from swr_cache.cache.models import CachedEntry, EngineKind
from swr_cache.cache.storage.base import StorageBackend
from swr_cache.errors import StorageFailure

logger = logging.getLogger(__name__)


def parse_cache_control(value: str) -> dict[str, str | None]:
    """Split a Cache-Control header into lower-cased directives."""
    directives: dict[str, str | None] = {}
    for part in value.split(","):
        name, sep, arg = part.strip().partition("=")
        if not name:
            continue
        directives[name.strip().lower()] = arg.strip().strip('"') if sep else None
    return directives


def directive_seconds(directives: dict[str, str | None], name: str) -> int | None:
    """Integer value of a directive, or None when absent or unparsable."""
    value = directives.get(name)
    if value is None:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class CacheEngine(ABC):
    """Stores whole responses under a cache key.

    Entries are written and replaced as a unit; ``match`` never returns a
    partially written entry.
    """

    kind: EngineKind

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    @abstractmethod
    def storage_key(self, key: str) -> str:
        """Physical key of the record holding ``key``."""

    @abstractmethod
    def ttl_for(self, entry: CachedEntry) -> int | None:
        """Seconds the backing store keeps ``entry``, None for no expiry."""

    def is_storable(self, entry: CachedEntry) -> bool:
        return "no-store" not in parse_cache_control(entry.cache_control)

    async def put(self, key: str, entry: CachedEntry) -> bool:
        """Store ``entry``; returns False without storing when it must not be cached.

        Raises:
            StorageFailure: If the backing store rejects the write.
        """
        if not self.is_storable(entry):
            logger.debug("Not storing %s in %s: response is not storable", key, self.kind.value)
            return False

        try:
            stored = await self.storage.set(
                self.storage_key(key), entry.to_record(), self.ttl_for(entry)
            )
        except Exception as e:
            raise StorageFailure("put", key, str(e)) from e

        if not stored:
            raise StorageFailure("put", key, "backend refused the write")
        return True

    async def match(self, key: str) -> CachedEntry | None:
        """Return the stored entry, or None when absent or unreadable.

        Raises:
            StorageFailure: If the backing store cannot be read.
        """
        try:
            record = await self.storage.get(self.storage_key(key))
        except Exception as e:
            raise StorageFailure("match", key, str(e)) from e

        if record is None:
            return None

        try:
            return CachedEntry.from_record(record)
        except ValueError as e:
            logger.warning("Discarding unreadable %s record for %s: %s", self.kind.value, key, e)
            return None

    async def delete(self, key: str) -> None:
        """Remove the entry for ``key``; deleting an absent key is not an error.

        Raises:
            StorageFailure: If the backing store cannot delete the record.
        """
        try:
            await self.storage.delete(self.storage_key(key))
        except Exception as e:
            raise StorageFailure("delete", key, str(e)) from e
