"""Shared fixtures: a controllable clock, a recording origin and a wired cache."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from swr_cache.cache.engines import EdgeCacheEngine, KVCacheEngine
from swr_cache.cache.models import EngineKind
from swr_cache.cache.origin import OriginClient
from swr_cache.cache.pipeline import SWRCache
from swr_cache.cache.storage import FileSystemStorage, MemoryStorage
from swr_cache.config import CacheConfig, LoggingConfig, Settings
from swr_cache.errors.logger import StructuredLogger


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class OriginStub:
    """MockTransport handler answering ``version-<n>`` bodies and recording requests."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.headers: dict[str, str] = {"content-type": "text/plain"}
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("origin unreachable", request=request)
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=f"version-{len(self.requests)}".encode(),
        )

    @property
    def urls(self) -> list[str]:
        return [str(request.url) for request in self.requests]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        logging=LoggingConfig(log_dir=tmp_path / "logs"),
        cache=CacheConfig(kv_dir=tmp_path / "kv"),
    )


@pytest.fixture
def error_logger(settings):
    return StructuredLogger("swr_cache_test", config=settings)


@pytest.fixture
def origin_stub():
    return OriginStub()


@pytest.fixture
def origin_client(settings, origin_stub):
    return OriginClient(settings.origin, transport=httpx.MockTransport(origin_stub))


@pytest.fixture
def engines(tmp_path, clock):
    return {
        EngineKind.KV: KVCacheEngine(FileSystemStorage(cache_dir=tmp_path / "kv", clock=clock)),
        EngineKind.EDGE: EdgeCacheEngine(MemoryStorage(clock=clock.epoch), clock=clock),
    }


@pytest.fixture
async def swr(settings, engines, origin_client, error_logger, clock):
    cache = SWRCache(
        settings,
        engines=engines,
        origin=origin_client,
        error_logger=error_logger,
        clock=clock,
    )
    yield cache
    await cache.close()
