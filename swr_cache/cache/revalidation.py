"""Background revalidation: fetch, stamp and store without delaying responses.

A miss hands the response it already fetched to :meth:`Revalidator.store`; a
stale hit asks :meth:`Revalidator.refresh` to fetch the origin again. Both run
as asyncio tasks owned by the revalidator and never raise into callers: a
failed revalidation leaves the entry as it was, and the next request
classifies it the same way and tries again.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from swr_cache.cache.engines.base import CacheEngine, parse_cache_control
from swr_cache.cache.freshness import Freshness
from swr_cache.cache.models import (
    HEADER_CACHE_CONTROL,
    HEADER_CACHE_DT,
    HEADER_CACHE_TTL,
    HEADER_SET_COOKIE,
    CachedEntry,
    CachePolicy,
    format_timestamp,
)
from swr_cache.cache.origin import OriginClient
from swr_cache.config import RevalidationConfig
from swr_cache.errors import OriginFetchFailure, StorageFailure
from swr_cache.errors.logger import (
    ErrorCategory,
    ErrorSeverity,
    RevalidationOutcome,
    RevalidationRecord,
    StructuredLogger,
    get_logger,
)

logger = logging.getLogger(__name__)


def prepare_for_storage(
    response: CachedEntry,
    policy: CachePolicy,
    now: datetime,
    extra_max_age: int,
) -> CachedEntry:
    """Copy of ``response`` ready to be cached under ``policy``.

    Set-Cookie is always dropped. Bounded policies stamp the storage time and
    window (seconds) and replace Cache-Control with a public max-age of the
    expiry plus ``extra_max_age``. Unlimited policies reduce Cache-Control to
    ``public`` so no engine expires the entry. An origin ``no-store`` is kept
    in both cases, which makes engines refuse the write.
    """
    headers = {
        name: value for name, value in response.headers.items() if name != HEADER_SET_COOKIE
    }
    no_store = "no-store" in parse_cache_control(response.cache_control)

    if not no_store:
        if policy.unlimited:
            headers[HEADER_CACHE_CONTROL] = "public"
        else:
            headers[HEADER_CACHE_DT] = format_timestamp(now)
            headers[HEADER_CACHE_TTL] = str(policy.expire_seconds)
            headers[HEADER_CACHE_CONTROL] = (
                f"public, max-age={policy.expire_seconds + extra_max_age}"
            )

    return CachedEntry(status_code=response.status_code, headers=headers, body=response.body)


class RevalidationHandle:
    """Handle on one background task for a cache key."""

    def __init__(self, key: str, task: "asyncio.Task[bool]"):
        self.key = key
        self.task = task

    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> None:
        self.task.cancel()

    async def wait(self) -> bool:
        """Wait for the task; True if an entry was stored."""
        try:
            return await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if self.task.cancelled():
                return False
            raise


class Revalidator:
    """Owns background store and refresh tasks.

    With ``coalesce`` enabled at most one task per cache key is in flight;
    later requests for the same key get the running task's handle. With
    ``task_lifetime == "request"`` each task holds for ``settle_seconds``
    after its work before it completes.
    """

    def __init__(
        self,
        origin: OriginClient,
        config: RevalidationConfig | None = None,
        error_logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.origin = origin
        self.config = config or RevalidationConfig()
        self._error_logger = error_logger
        self.clock = clock or (lambda: datetime.now(UTC))
        self._inflight: dict[str, RevalidationHandle] = {}
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def error_logger(self) -> StructuredLogger:
        if self._error_logger is None:
            self._error_logger = get_logger()
        return self._error_logger

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def store(
        self,
        key: str,
        engine: CacheEngine,
        policy: CachePolicy,
        response: CachedEntry,
        extra_max_age: int,
        url: str | None = None,
    ) -> RevalidationHandle:
        """Stamp and store a response that was already fetched on a miss."""
        return self._spawn(
            key,
            engine,
            Freshness.MISS,
            url,
            lambda: self._store(key, engine, policy, response, extra_max_age, url=url),
        )

    def refresh(
        self,
        key: str,
        engine: CacheEngine,
        policy: CachePolicy,
        url: str,
        extra_max_age: int,
    ) -> RevalidationHandle:
        """Fetch ``url`` again for a stale entry and store the result."""
        return self._spawn(
            key,
            engine,
            Freshness.STALE,
            url,
            lambda: self._refresh(key, engine, policy, url, extra_max_age),
        )

    async def cancel(self, key: str) -> bool:
        """Cancel the in-flight task for ``key``, if any, and wait for it to end.

        A store whose write has already started finishes that write first, so
        a delete issued after this returns is never overtaken by it.
        """
        handle = self._inflight.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        await handle.wait()
        return True

    async def drain(self) -> None:
        """Wait until every background task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(
        self,
        key: str,
        engine: CacheEngine,
        trigger: Freshness,
        url: str | None,
        work: Callable[[], Awaitable[RevalidationOutcome]],
    ) -> RevalidationHandle:
        if self.config.coalesce and (existing := self._inflight.get(key)) is not None:
            logger.debug("Revalidation already in flight for %s", key)
            return existing

        record = RevalidationRecord(
            cache_key=key,
            url=url,
            engine=engine.kind.value,
            freshness_state=trigger.value,
            outcome=RevalidationOutcome.FAILED,
        )
        task = asyncio.create_task(self._run(record, work), name=f"revalidate:{key}")
        handle = RevalidationHandle(key, task)
        self._tasks.add(task)
        self._inflight[key] = handle

        def _finished(done: "asyncio.Task[bool]") -> None:
            self._tasks.discard(done)
            if self._inflight.get(key) is handle:
                del self._inflight[key]

        task.add_done_callback(_finished)
        return handle

    async def _run(
        self, record: RevalidationRecord, work: Callable[[], Awaitable[RevalidationOutcome]]
    ) -> bool:
        start = time.perf_counter()
        try:
            record.outcome = await work()
        except asyncio.CancelledError:
            record.outcome = RevalidationOutcome.CANCELLED
            raise
        except Exception as e:
            self.error_logger.log_exception(
                e,
                category=ErrorCategory.SYSTEM,
                cache_key=record.cache_key,
                url=record.url,
                engine=record.engine,
                freshness_state=record.freshness_state,
            )
        finally:
            record.duration_ms = round((time.perf_counter() - start) * 1000)
            self.error_logger.log_revalidation(record)

        if self.config.task_lifetime == "request" and self.config.settle_seconds > 0:
            await asyncio.sleep(self.config.settle_seconds)
        return record.outcome is RevalidationOutcome.STORED

    async def _refresh(
        self,
        key: str,
        engine: CacheEngine,
        policy: CachePolicy,
        url: str,
        extra_max_age: int,
    ) -> RevalidationOutcome:
        try:
            response = await self.origin.fetch(url)
        except OriginFetchFailure as e:
            self.error_logger.log_exception(
                e,
                category=ErrorCategory.REVALIDATION,
                severity=ErrorSeverity.WARNING,
                cache_key=key,
                url=url,
                engine=engine.kind.value,
                freshness_state=Freshness.STALE.value,
            )
            return RevalidationOutcome.FAILED

        return await self._store(key, engine, policy, response, extra_max_age, url=url)

    async def _store(
        self,
        key: str,
        engine: CacheEngine,
        policy: CachePolicy,
        response: CachedEntry,
        extra_max_age: int,
        url: str | None = None,
    ) -> RevalidationOutcome:
        if not response.is_success:
            logger.info("Not caching %s: origin answered %s", key, response.status_code)
            return RevalidationOutcome.REFUSED

        entry = prepare_for_storage(response, policy, self.clock(), extra_max_age)
        write = asyncio.ensure_future(engine.put(key, entry))
        try:
            stored = await asyncio.shield(write)
        except asyncio.CancelledError:
            # File writes run in worker threads and cannot be interrupted.
            await asyncio.wait({write})
            if not write.cancelled() and (error := write.exception()) is not None:
                logger.warning("Write for %s failed while cancelling: %s", key, error)
            raise
        except StorageFailure as e:
            self.error_logger.log_exception(
                e,
                category=ErrorCategory.STORAGE,
                severity=ErrorSeverity.WARNING,
                cache_key=key,
                url=url,
                engine=engine.kind.value,
            )
            return RevalidationOutcome.FAILED

        logger.debug("Stored %s in %s engine: %s", key, engine.kind.value, stored)
        return RevalidationOutcome.STORED if stored else RevalidationOutcome.REFUSED
