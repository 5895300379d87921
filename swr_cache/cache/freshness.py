"""Freshness classification of cached entries and the headers reporting it."""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel

from swr_cache.cache.models import (
    HEADER_CACHE,
    HEADER_CACHE_EXPIRES,
    HEADER_CACHE_TTL,
    HEADER_READ_MS,
    CachedEntry,
    CachePolicy,
    format_timestamp,
)

NO_LIMIT_LABEL = "No Limit"


class Freshness(str, Enum):
    """Cache state reported in ``X-CACHE``."""

    MISS = "MISS"
    HIT = "HIT"
    STALE = "HIT; STALE"


class FreshnessVerdict(BaseModel):
    """Outcome of evaluating one lookup against a policy."""

    state: Freshness
    unlimited: bool = False
    expires_at: datetime | None = None
    ttl_seconds: float | None = None

    @property
    def needs_revalidation(self) -> bool:
        return self.state is Freshness.STALE

    def headers(self, read_ms: int) -> dict[str, str]:
        """Diagnostic headers for this verdict.

        ``x-cache-ttl`` is seconds until expiry; negative once stale.
        """
        headers = {HEADER_CACHE: self.state.value}
        if self.unlimited:
            headers[HEADER_CACHE_EXPIRES] = NO_LIMIT_LABEL
        elif self.expires_at is not None:
            headers[HEADER_CACHE_EXPIRES] = format_timestamp(self.expires_at)
            headers[HEADER_CACHE_TTL] = f"{self.ttl_seconds:.3f}"
        headers[HEADER_READ_MS] = str(read_ms)
        return headers


def evaluate(entry: CachedEntry | None, policy: CachePolicy, now: datetime) -> FreshnessVerdict:
    """Classify ``entry`` as absent, fresh or stale at ``now``.

    An entry under a bounded policy that carries no readable storage stamp is
    stale, so the next refresh stamps it.
    """
    expire = timedelta(milliseconds=policy.expire_ms)

    if entry is None:
        if policy.unlimited:
            return FreshnessVerdict(state=Freshness.MISS, unlimited=True)
        return FreshnessVerdict(
            state=Freshness.MISS,
            expires_at=now + expire,
            ttl_seconds=expire.total_seconds(),
        )

    if policy.unlimited:
        return FreshnessVerdict(state=Freshness.HIT, unlimited=True)

    stored_at = entry.stored_at
    if stored_at is None:
        return FreshnessVerdict(state=Freshness.STALE)

    expires_at = stored_at + expire
    state = Freshness.HIT if now <= expires_at else Freshness.STALE
    return FreshnessVerdict(
        state=state,
        expires_at=expires_at,
        ttl_seconds=(expires_at - now).total_seconds(),
    )
