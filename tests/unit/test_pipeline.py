"""Tests for the SWRCache request pipeline."""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from swr_cache.cache.models import EngineKind
from swr_cache.cache.pipeline import SWRCache
from swr_cache.errors import (
    InvalidRequest,
    MalformedTimespan,
    OriginFetchFailure,
    StorageFailure,
    UnsupportedEngine,
)
from swr_cache.errors.logger import ErrorCategory, StructuredLogger

PATH = "5m/example.com/a"


async def settle(swr: SWRCache) -> None:
    await swr.revalidator.drain()


class DescribeMiss:
    """Requests with nothing cached."""

    @pytest.mark.asyncio
    async def it_fetches_and_reports_a_miss(self, swr, origin_stub):
        response = await swr.handle(PATH)

        assert response.status_code == 200
        assert response.body == b"version-1"
        assert response.headers["x-cache"] == "MISS"
        assert response.headers["x-cache-expires"] == "2024-01-01T00:05:00.000Z"
        assert response.headers["x-cache-ttl"] == "300.000"
        assert int(response.headers["x-read-ms"]) >= 0
        assert origin_stub.urls == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def it_stores_the_response_in_the_background(self, swr, engines):
        await swr.handle(PATH)
        await settle(swr)

        entry = await engines[EngineKind.KV].match("https://example.com/a?ttl=5m")
        assert entry.body == b"version-1"
        assert entry.headers["x-cache-dt"] == "2024-01-01T00:00:00.000Z"
        assert entry.headers["cache-control"] == "public, max-age=900"

    @pytest.mark.asyncio
    async def it_passes_origin_errors_through_uncached(self, swr, origin_stub):
        origin_stub.status_code = 404

        first = await swr.handle(PATH)
        await settle(swr)
        second = await swr.handle(PATH)

        assert first.status_code == 404
        assert "x-cache" not in first.headers
        assert second.body == b"version-2"
        assert len(origin_stub.requests) == 2

    @pytest.mark.asyncio
    async def it_raises_when_the_origin_is_unreachable(self, swr, origin_stub):
        origin_stub.fail = True

        with pytest.raises(OriginFetchFailure):
            await swr.handle(PATH)

    @pytest.mark.asyncio
    async def it_never_caches_no_store_responses(self, swr, origin_stub):
        origin_stub.headers = {"cache-control": "no-store"}

        await swr.handle(PATH)
        await settle(swr)
        second = await swr.handle(PATH)

        assert second.headers["x-cache"] == "MISS"
        assert len(origin_stub.requests) == 2

    @pytest.mark.asyncio
    async def it_degrades_storage_failures_to_a_miss(self, swr, engines, origin_stub, error_logger):
        await swr.handle(PATH)
        await settle(swr)

        with (
            patch.object(engines[EngineKind.KV], "match", new_callable=AsyncMock) as match,
            patch.object(error_logger, "log_exception") as log_exception,
        ):
            match.side_effect = StorageFailure("match", "key", "disk gone")
            response = await swr.handle(PATH)

        assert response.headers["x-cache"] == "MISS"
        assert response.body == b"version-2"
        assert log_exception.call_args.kwargs["category"] is ErrorCategory.STORAGE


class DescribeHit:
    """Requests for cached entries."""

    @pytest.mark.asyncio
    async def it_serves_fresh_entries_with_a_shrinking_ttl(self, swr, origin_stub, clock):
        first = await swr.handle(PATH)
        await settle(swr)
        clock.advance(seconds=10)

        second = await swr.handle(PATH)

        assert second.headers["x-cache"] == "HIT"
        assert float(second.headers["x-cache-ttl"]) < float(first.headers["x-cache-ttl"])
        assert second.headers["x-cache-ttl"] == "290.000"
        assert second.body == first.body
        assert len(origin_stub.requests) == 1

    @pytest.mark.asyncio
    async def it_serves_stale_entries_and_refreshes_them(self, swr, origin_stub, clock):
        first = await swr.handle(PATH)
        await settle(swr)
        clock.advance(minutes=6)

        stale = await swr.handle(PATH)

        assert stale.status_code == 200
        assert stale.headers["x-cache"] == "HIT; STALE"
        assert float(stale.headers["x-cache-ttl"]) < 0
        assert stale.body == first.body

        await settle(swr)
        assert origin_stub.urls == ["https://example.com/a", "https://example.com/a"]

        refreshed = await swr.handle(PATH)
        assert refreshed.headers["x-cache"] == "HIT"
        assert refreshed.body == b"version-2"

    @pytest.mark.asyncio
    async def it_keeps_serving_stale_when_refresh_fails(self, swr, origin_stub, clock, error_logger):
        await swr.handle(PATH)
        await settle(swr)
        clock.advance(minutes=6)
        origin_stub.fail = True

        with patch.object(error_logger, "log_exception") as log_exception:
            stale = await swr.handle(PATH)
            await settle(swr)
            again = await swr.handle(PATH)
            await settle(swr)

        assert stale.headers["x-cache"] == again.headers["x-cache"] == "HIT; STALE"
        assert again.body == b"version-1"
        assert log_exception.call_args.kwargs["category"] is ErrorCategory.REVALIDATION

    @pytest.mark.asyncio
    async def it_strips_set_cookie_from_cached_copies(self, swr, origin_stub):
        origin_stub.headers = {"content-type": "text/plain", "set-cookie": "session=abc"}

        first = await swr.handle(PATH)
        await settle(swr)
        second = await swr.handle(PATH)

        assert first.headers["set-cookie"] == "session=abc"
        assert "set-cookie" not in second.headers
        assert second.headers["content-type"] == "text/plain"

    @pytest.mark.asyncio
    async def it_keeps_no_limit_entries_until_purged(self, swr, origin_stub, clock):
        first = await swr.handle("no-limit/example.com/a")
        await settle(swr)
        clock.advance(days=400)

        second = await swr.handle("no-limit/example.com/a")

        assert first.headers["x-cache"] == "MISS"
        assert first.headers["x-cache-expires"] == "No Limit"
        assert second.headers["x-cache"] == "HIT"
        assert second.headers["x-cache-expires"] == "No Limit"
        assert "x-cache-ttl" not in second.headers
        assert len(origin_stub.requests) == 1

    @pytest.mark.asyncio
    async def it_applies_the_default_policy_to_bare_urls(self, swr, origin_stub):
        await swr.handle("example.com/a")
        await settle(swr)

        response = await swr.handle("example.com/a")

        assert response.headers["x-cache-expires"] == "No Limit"
        assert len(origin_stub.requests) == 1

    @pytest.mark.asyncio
    async def it_keys_entries_by_the_literal_token(self, swr, origin_stub):
        await swr.handle("60/example.com/a")
        await settle(swr)

        response = await swr.handle("1m/example.com/a")

        assert response.headers["x-cache"] == "MISS"
        assert len(origin_stub.requests) == 2

    @pytest.mark.asyncio
    async def it_uses_the_engine_named_in_the_policy(self, swr, engines, origin_stub):
        await swr.handle("5m,cache/example.com/a")
        await settle(swr)

        response = await swr.handle("5m,cache/example.com/a")

        assert response.headers["x-cache"] == "HIT"
        assert await engines[EngineKind.EDGE].match("https://example.com/a?ttl=5m,cache")
        assert await engines[EngineKind.KV].match("https://example.com/a?ttl=5m,cache") is None


class DescribePurge:
    """Purge commands."""

    @pytest.mark.asyncio
    async def it_purges_so_the_next_request_misses(self, swr, origin_stub):
        await swr.handle(PATH)
        await settle(swr)

        purged = await swr.handle(f"purge/{PATH}")
        after = await swr.handle(PATH)

        assert json.loads(purged.body)["data"] == {"success": True, "message": "Cache purged"}
        assert after.headers["x-cache"] == "MISS"
        assert len(origin_stub.requests) == 2

    @pytest.mark.asyncio
    async def it_succeeds_when_nothing_was_cached(self, swr, origin_stub):
        purged = await swr.handle(f"purge/{PATH}")

        assert purged.status_code == 200
        assert json.loads(purged.body)["data"]["success"] is True
        assert origin_stub.requests == []

    @pytest.mark.asyncio
    async def it_cancels_a_pending_store(self, swr, origin_stub):
        await swr.handle(PATH)
        await swr.handle(f"purge/{PATH}")
        await settle(swr)

        after = await swr.handle(PATH)

        assert after.headers["x-cache"] == "MISS"

    @pytest.mark.asyncio
    async def it_surfaces_storage_failures(self, swr, engines):
        with patch.object(engines[EngineKind.KV], "delete", new_callable=AsyncMock) as delete:
            delete.side_effect = StorageFailure("delete", "key", "disk gone")

            with pytest.raises(StorageFailure):
                await swr.handle(f"purge/{PATH}")


class DescribeValidation:
    """Requests rejected before any cache or origin access."""

    @pytest.mark.asyncio
    async def it_rejects_unsupported_engines(self, swr, origin_stub):
        with pytest.raises(UnsupportedEngine, match="bogus"):
            await swr.handle("60,bogus/example.com/a")

        assert origin_stub.requests == []

    @pytest.mark.asyncio
    async def it_rejects_malformed_timespans(self, swr, origin_stub):
        with pytest.raises(MalformedTimespan):
            await swr.handle("5x/example.com/a")

        assert origin_stub.requests == []

    @pytest.mark.parametrize("token", ["9000y", "99999999999y", "5m-9000y"])
    @pytest.mark.asyncio
    async def it_rejects_windows_beyond_the_maximum(self, swr, origin_stub, token):
        with pytest.raises(MalformedTimespan) as exc_info:
            await swr.handle(f"{token}/example.com/a")

        assert exc_info.value.status_code == 400
        assert origin_stub.requests == []

    @pytest.mark.asyncio
    async def it_caches_the_longest_allowed_window(self, swr, origin_stub):
        first = await swr.handle("1000y-1000y/example.com/a")
        await settle(swr)
        second = await swr.handle("1000y-1000y/example.com/a")

        assert first.headers["x-cache"] == "MISS"
        assert second.headers["x-cache"] == "HIT"
        assert len(origin_stub.requests) == 1

    @pytest.mark.asyncio
    async def it_rejects_missing_targets(self, swr):
        with pytest.raises(InvalidRequest):
            await swr.handle("5m")

    @pytest.mark.asyncio
    async def it_rejects_engines_without_a_binding(self, settings, engines, origin_client):
        swr = SWRCache(
            settings,
            engines={EngineKind.KV: engines[EngineKind.KV]},
            origin=origin_client,
            error_logger=Mock(spec=StructuredLogger),
        )

        with pytest.raises(UnsupportedEngine, match="cache"):
            await swr.handle("5m,cache/example.com/a")

        await swr.close()
