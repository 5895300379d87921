"""Request path resolution: policy tokens, target URLs and cache keys.

Requests are addressed as ``/<policy>/<url...>``, ``/<url...>`` (deployment
default policy), ``/purge/<policy>/<url...>`` or ``/purge/<url...>``. A policy
token reads ``expire[-stale][,engine]`` or ``no-limit[,engine]``.
"""

import re

import httpx
from pydantic import BaseModel

from swr_cache.cache.models import NO_LIMIT, CachePolicy, EngineKind
from swr_cache.cache.timespan import parse_timespan
from swr_cache.config import CacheConfig
from swr_cache.errors import InvalidRequest, UnsupportedEngine

POLICY_PATTERN = re.compile(
    r"^(?:no-limit|[0-9]+[a-zA-Z]?(?:-[0-9]+[a-zA-Z]?)?)(?:,[a-z]+)?$"
)
PURGE = "purge"
_SCHEME_SEGMENTS = ("http:", "https:")


class RequestTarget(BaseModel):
    """A request path broken into its parts."""

    url: str
    token: str
    purge: bool = False

    @property
    def cache_key(self) -> str:
        return build_cache_key(self.url, self.token)


def is_policy_token(segment: str) -> bool:
    return POLICY_PATTERN.match(segment) is not None


def resolve_target(
    path: str,
    config: CacheConfig,
    query: str = "",
    scheme: str = "https",
) -> RequestTarget:
    """Split a request path into target URL, policy token and purge flag.

    When the first segment is not a policy token the whole path is the target
    and the default policy of the configured default engine applies.

    Raises:
        InvalidRequest: If no target URL remains after the policy segment.
    """
    segments = [segment for segment in path.split("/") if segment]

    purge = bool(segments) and segments[0] == PURGE
    if purge:
        segments = segments[1:]

    if segments and is_policy_token(segments[0]):
        token, url_segments = segments[0], segments[1:]
    else:
        token, url_segments = config.default_policy(), segments

    if url_segments and url_segments[0].lower() in _SCHEME_SEGMENTS:
        url_segments = url_segments[1:]

    if not url_segments:
        raise InvalidRequest("Missing target URL. Use /:ttl/:url")

    raw_url = f"{scheme}://{'/'.join(url_segments)}"
    if query:
        raw_url = f"{raw_url}?{query}"

    try:
        url = str(httpx.URL(raw_url))
    except httpx.InvalidURL as e:
        raise InvalidRequest(f"Invalid target URL {raw_url}: {e}") from e

    return RequestTarget(url=url, token=token, purge=purge)


def resolve_policy(token: str, config: CacheConfig) -> CachePolicy:
    """Turn a policy token into expiry, stale window and engine.

    Raises:
        MalformedTimespan: If either timespan fails to parse.
        UnsupportedEngine: If the engine override names an unknown engine.
    """
    timespan, _, engine_name = token.partition(",")
    engine_name = engine_name or config.default_engine

    if timespan == NO_LIMIT:
        expire_ms, stale_ms, unlimited = 0, 0, True
    elif "-" in timespan:
        expire, stale = timespan.split("-", 1)
        expire_ms, stale_ms, unlimited = parse_timespan(expire), parse_timespan(stale), False
    else:
        expire_ms = parse_timespan(timespan)
        stale_ms = config.stale_window_seconds * 1000
        unlimited = False

    try:
        engine = EngineKind(engine_name)
    except ValueError:
        raise UnsupportedEngine(engine_name) from None

    return CachePolicy(
        token=token,
        expire_ms=expire_ms,
        stale_ms=stale_ms,
        engine=engine,
        unlimited=unlimited,
    )


def build_cache_key(url: str, token: str) -> str:
    """Key for ``url`` cached under the literal ``token``.

    Two tokens with the same meaning (``60`` and ``1m``) give two keys.
    """
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}ttl={token}"
