"""Request pipeline: policy resolution, lookup, classification and dispatch."""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from swr_cache.api import success_envelope
from swr_cache.cache.engines import CacheEngine, build_engines
from swr_cache.cache.freshness import evaluate
from swr_cache.cache.models import CacheResponse, CachePolicy, EngineKind
from swr_cache.cache.origin import OriginClient
from swr_cache.cache.policy import RequestTarget, resolve_policy, resolve_target
from swr_cache.cache.revalidation import Revalidator
from swr_cache.config import Settings, get_settings
from swr_cache.errors import StorageFailure, UnsupportedEngine
from swr_cache.errors.logger import ErrorCategory, ErrorSeverity, StructuredLogger, get_logger

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class SWRCache:
    """Stale-while-revalidate cache in front of arbitrary origins.

    Each request is classified on its own: a miss is fetched and returned
    while its copy is stored in the background, a fresh hit is served from
    the engine, and a stale hit is served from the engine while a background
    refresh replaces it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engines: dict[EngineKind, CacheEngine] | None = None,
        origin: OriginClient | None = None,
        revalidator: Revalidator | None = None,
        error_logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or get_settings()
        self.engines = engines if engines is not None else build_engines(self.settings.cache)
        self.origin = origin or OriginClient(self.settings.origin)
        self.clock = clock or (lambda: datetime.now(UTC))
        self._error_logger = error_logger
        self.revalidator = revalidator or Revalidator(
            self.origin,
            self.settings.revalidation,
            error_logger=error_logger,
            clock=self.clock,
        )

    @property
    def error_logger(self) -> StructuredLogger:
        if self._error_logger is None:
            self._error_logger = get_logger()
        return self._error_logger

    def engine_for(self, policy: CachePolicy) -> CacheEngine:
        """Engine bound to the policy's engine kind.

        Raises:
            UnsupportedEngine: If no engine is configured for that kind.
        """
        engine = self.engines.get(policy.engine)
        if engine is None:
            raise UnsupportedEngine(policy.engine.value)
        return engine

    async def handle(self, path: str, query: str = "") -> CacheResponse:
        """Answer a ``/<policy>/<url...>`` or ``/purge/...`` request.

        Raises:
            InvalidRequest: If the path holds no target URL.
            MalformedTimespan: If the policy token cannot be parsed.
            UnsupportedEngine: If the policy selects an unknown engine.
            OriginFetchFailure: If a miss cannot reach the origin.
            StorageFailure: If a purge cannot delete the entry.
        """
        target = resolve_target(
            path, self.settings.cache, query=query, scheme=self.settings.origin.scheme
        )
        policy = resolve_policy(target.token, self.settings.cache)
        engine = self.engine_for(policy)

        if target.purge:
            return await self.purge(target, engine)

        lookup_start = time.perf_counter()
        entry = await self._lookup(engine, target)
        if entry is None:
            return await self._serve_miss(target, policy, engine)

        verdict = evaluate(entry, policy, self.clock())
        response = CacheResponse.from_entry(entry)
        response.headers.update(verdict.headers(_elapsed_ms(lookup_start)))

        if verdict.needs_revalidation:
            logger.info("Serving stale %s and refreshing it", target.cache_key)
            self.revalidator.refresh(
                target.cache_key,
                engine,
                policy,
                target.url,
                self.settings.cache.refresh_grace_seconds,
            )
        else:
            logger.debug("Serving fresh %s", target.cache_key)

        return response

    async def purge(self, target: RequestTarget, engine: CacheEngine) -> CacheResponse:
        """Delete the entry for ``target``; succeeds whether or not it existed."""
        key = target.cache_key
        await self.revalidator.cancel(key)
        await engine.delete(key)
        logger.info("Purged %s from %s engine", key, engine.kind.value)
        return CacheResponse.from_payload(success_envelope(message="Cache purged"))

    async def _lookup(self, engine: CacheEngine, target: RequestTarget):
        try:
            return await engine.match(target.cache_key)
        except StorageFailure as e:
            self.error_logger.log_exception(
                e,
                category=ErrorCategory.STORAGE,
                severity=ErrorSeverity.WARNING,
                cache_key=target.cache_key,
                url=target.url,
                engine=engine.kind.value,
                metadata={"degraded_to": "miss"},
            )
            return None

    async def _serve_miss(
        self, target: RequestTarget, policy: CachePolicy, engine: CacheEngine
    ) -> CacheResponse:
        fetch_start = time.perf_counter()
        fetched = await self.origin.fetch(target.url)
        read_ms = _elapsed_ms(fetch_start)

        if not fetched.is_success:
            logger.info("Passing through %s from %s", fetched.status_code, target.url)
            return CacheResponse.from_entry(fetched)

        self.revalidator.store(
            target.cache_key, engine, policy, fetched, policy.stale_seconds, url=target.url
        )

        verdict = evaluate(None, policy, self.clock())
        response = CacheResponse.from_entry(fetched)
        response.headers.update(verdict.headers(read_ms))
        logger.debug("Fetched %s for %s", target.url, target.cache_key)
        return response

    async def close(self) -> None:
        """Finish background work and release the origin client."""
        await self.revalidator.drain()
        await self.origin.close()
