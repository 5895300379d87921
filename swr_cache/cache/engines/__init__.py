"""Interchangeable cache engines."""

from swr_cache.cache.engines.base import CacheEngine
from swr_cache.cache.engines.edge import EdgeCacheEngine
from swr_cache.cache.engines.kv import KVCacheEngine
from swr_cache.cache.models import EngineKind
from swr_cache.cache.storage import FileSystemStorage, MemoryStorage
from swr_cache.config import CacheConfig


def build_engines(config: CacheConfig) -> dict[EngineKind, CacheEngine]:
    """Engines bound to the configured stores."""
    return {
        EngineKind.KV: KVCacheEngine(FileSystemStorage(cache_dir=config.kv_dir)),
        EngineKind.EDGE: EdgeCacheEngine(MemoryStorage(max_entries=config.edge_max_entries)),
    }


__all__ = ["CacheEngine", "EdgeCacheEngine", "KVCacheEngine", "build_engines"]
