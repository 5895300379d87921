"""Transparent edge cache engine keyed by a synthetic request URL."""

import hashlib
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from swr_cache.cache.engines.base import CacheEngine, directive_seconds, parse_cache_control
from swr_cache.cache.models import CachedEntry, EngineKind
from swr_cache.cache.storage.base import StorageBackend
from swr_cache.cache.storage.memory import MemoryStorage


class EdgeCacheEngine(CacheEngine):
    """Shared response cache that manages its own eviction.

    Lifetime comes from the stored response itself: ``s-maxage``, then
    ``max-age``, then ``Expires``. ``no-store`` and ``private`` responses are
    not kept, since the edge tier is shared between callers, and neither are
    responses whose lifetime has already run out.
    """

    kind = EngineKind.EDGE

    def __init__(
        self,
        storage: StorageBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        super().__init__(storage if storage is not None else MemoryStorage())
        self.clock = clock or (lambda: datetime.now(UTC))

    def storage_key(self, key: str) -> str:
        # Keys are request URLs; hashing keeps long query strings bounded.
        return self.storage.generate_key("edge", hashlib.sha256(key.encode("utf-8")).hexdigest())

    def is_storable(self, entry: CachedEntry) -> bool:
        directives = parse_cache_control(entry.cache_control)
        if "no-store" in directives or "private" in directives:
            return False
        lifetime = self._lifetime(entry)
        return lifetime is None or lifetime > 0

    def ttl_for(self, entry: CachedEntry) -> int | None:
        lifetime = self._lifetime(entry)
        return lifetime if lifetime and lifetime > 0 else None

    def _lifetime(self, entry: CachedEntry) -> int | None:
        """Seconds of freshness the response grants itself, None when it names none."""
        directives = parse_cache_control(entry.cache_control)
        for name in ("s-maxage", "max-age"):
            seconds = directive_seconds(directives, name)
            if seconds is not None:
                return seconds

        expires = entry.headers.get("expires")
        if not expires:
            return None
        try:
            expires_at = parsedate_to_datetime(expires)
        except (TypeError, ValueError):
            return None
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return int((expires_at - self.clock()).total_seconds())
