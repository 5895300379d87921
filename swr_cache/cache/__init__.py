"""Stale-while-revalidate caching engine."""

from swr_cache.cache.engines import CacheEngine, EdgeCacheEngine, KVCacheEngine
from swr_cache.cache.freshness import Freshness, FreshnessVerdict, evaluate
from swr_cache.cache.models import CachedEntry, CachePolicy, CacheResponse, EngineKind
from swr_cache.cache.pipeline import SWRCache
from swr_cache.cache.timespan import parse_timespan

__all__ = [
    "CacheEngine",
    "CachedEntry",
    "CachePolicy",
    "CacheResponse",
    "EdgeCacheEngine",
    "EngineKind",
    "Freshness",
    "FreshnessVerdict",
    "KVCacheEngine",
    "SWRCache",
    "evaluate",
    "parse_timespan",
]
