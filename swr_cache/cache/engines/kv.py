"""Durable key-value engine with explicit record expiry."""

import hashlib

from swr_cache.cache.engines.base import CacheEngine, directive_seconds, parse_cache_control
from swr_cache.cache.models import CachedEntry, EngineKind
from swr_cache.cache.storage.base import StorageBackend
from swr_cache.cache.storage.filesystem import FileSystemStorage


class KVCacheEngine(CacheEngine):
    """Keeps each entry as a single record in a key-value store.

    The record expiry is ``max-age`` from the stored Cache-Control; responses
    without one are kept until purged.
    """

    kind = EngineKind.KV

    def __init__(self, storage: StorageBackend | None = None):
        super().__init__(storage if storage is not None else FileSystemStorage())

    def storage_key(self, key: str) -> str:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.storage.generate_key("kv", digest)

    def ttl_for(self, entry: CachedEntry) -> int | None:
        max_age = directive_seconds(parse_cache_control(entry.cache_control), "max-age")
        return max_age or None
