"""Exception hierarchy for the cache service.

Every exception carries the HTTP status the application layer answers with::

    SWRError               (500)
    +-- InvalidRequest     (400)
    +-- MalformedTimespan  (400)
    +-- UnsupportedEngine  (400)
    +-- OriginFetchFailure (502)
    +-- StorageFailure     (503)
"""


class SWRError(Exception):
    """Base exception for all cache service errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequest(SWRError):
    """Raised when a request path cannot be turned into a target URL."""

    status_code = 400


class MalformedTimespan(SWRError):
    """Raised when a policy token does not follow the timespan grammar."""

    status_code = 400

    def __init__(self, timespan: str, message: str | None = None):
        self.timespan = timespan
        super().__init__(
            message
            or (
                f'Invalid timespan "{timespan}". Please use either seconds or '
                "abbreviated formats (60, or, 1m)"
            )
        )


class UnsupportedEngine(SWRError):
    """Raised when a policy names a storage engine that does not exist."""

    status_code = 400

    def __init__(self, engine: str):
        self.engine = engine
        super().__init__(
            f'Storage engine "{engine}" is not supported, '
            'please use either "kv" or "cache"'
        )


class OriginFetchFailure(SWRError):
    """Raised when the origin cannot be reached."""

    status_code = 502

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class StorageFailure(SWRError):
    """Raised when a cache engine cannot read, write or delete a record."""

    status_code = 503

    def __init__(self, operation: str, key: str, reason: str):
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(f"Cache {operation} failed for {key}: {reason}")
