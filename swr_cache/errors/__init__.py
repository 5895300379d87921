"""Error taxonomy and structured error logging."""

from swr_cache.errors.exceptions import (
    InvalidRequest,
    MalformedTimespan,
    OriginFetchFailure,
    StorageFailure,
    SWRError,
    UnsupportedEngine,
)

__all__ = [
    "InvalidRequest",
    "MalformedTimespan",
    "OriginFetchFailure",
    "StorageFailure",
    "SWRError",
    "UnsupportedEngine",
]
