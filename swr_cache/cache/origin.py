"""HTTP client for origin fetches."""

import httpx

from swr_cache.cache.models import CachedEntry, normalize_headers
from swr_cache.config import OriginConfig
from swr_cache.errors import OriginFetchFailure


class OriginClient:
    """Fetches target URLs in a single, non-retried attempt."""

    def __init__(
        self,
        config: OriginConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize origin client.

        Args:
            config: Origin settings. Defaults to OriginConfig()
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        self.config = config or OriginConfig()
        self.client = httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=self.config.follow_redirects,
            timeout=self.config.timeout,
            transport=transport,
        )

    async def fetch(self, url: str) -> CachedEntry:
        """Fetch ``url`` and return its status, headers and decoded body.

        Non-2xx responses are returned as they are; only transport errors raise.

        Raises:
            OriginFetchFailure: If the origin cannot be reached or times out.
        """
        try:
            response = await self._fetch(url)
        except httpx.HTTPError as e:
            raise OriginFetchFailure(url, str(e) or e.__class__.__name__) from e

        return CachedEntry(
            status_code=response.status_code,
            headers=normalize_headers(response.headers),
            body=response.content,
        )

    async def _fetch(self, url: str) -> httpx.Response:
        """Fetch URL."""
        return await self.client.get(url)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
