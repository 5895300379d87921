"""Storage backends for cache persistence."""

from swr_cache.cache.storage.base import StorageBackend
from swr_cache.cache.storage.filesystem import FileSystemStorage
from swr_cache.cache.storage.memory import MemoryStorage

__all__ = ["StorageBackend", "FileSystemStorage", "MemoryStorage"]
