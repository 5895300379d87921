"""Cache models shared by the engines, the evaluator and the pipeline."""

import base64
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

HEADER_CACHE = "x-cache"
HEADER_CACHE_DT = "x-cache-dt"
HEADER_CACHE_TTL = "x-cache-ttl"
HEADER_CACHE_EXPIRES = "x-cache-expires"
HEADER_READ_MS = "x-read-ms"
HEADER_CACHE_CONTROL = "cache-control"
HEADER_SET_COOKIE = "set-cookie"

# The origin client hands back decoded bodies, so these no longer describe them.
TRANSPORT_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection", "keep-alive"}
)

NO_LIMIT = "no-limit"
RECORD_VERSION = 1


class EngineKind(str, Enum):
    """Storage engines a policy can select."""

    KV = "kv"
    EDGE = "cache"


class CachePolicy(BaseModel):
    """Freshness policy resolved from a request's policy token."""

    token: str
    expire_ms: int = Field(ge=0)
    stale_ms: int = Field(ge=0)
    engine: EngineKind
    unlimited: bool = False

    @property
    def expire_seconds(self) -> int:
        return self.expire_ms // 1000

    @property
    def stale_seconds(self) -> int:
        return self.stale_ms // 1000


class CachedEntry(BaseModel):
    """A stored response: status, replayable headers and body.

    The storage timestamp travels inside ``headers`` as ``x-cache-dt`` so the
    header map is both what gets replayed and the freshness bookkeeping.
    """

    status_code: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def stored_at(self) -> datetime | None:
        """Timestamp stamped by the revalidation task, if any."""
        return parse_timestamp(self.headers.get(HEADER_CACHE_DT))

    @property
    def cache_control(self) -> str:
        return self.headers.get(HEADER_CACHE_CONTROL, "")

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def to_record(self) -> bytes:
        """Serialize headers, status and body as one versioned record."""
        data = {
            "version": RECORD_VERSION,
            "status_code": self.status_code,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        }
        return json.dumps(data).encode("utf-8")

    @classmethod
    def from_record(cls, record: bytes) -> "CachedEntry":
        """Rebuild an entry from :meth:`to_record` output.

        Raises:
            ValueError: If the record is not a complete entry of a known version.
        """
        try:
            data = json.loads(record.decode("utf-8"))
            if data.get("version") != RECORD_VERSION:
                raise ValueError(f"Unknown record version: {data.get('version')!r}")
            return cls(
                status_code=data["status_code"],
                headers=data["headers"],
                body=base64.b64decode(data["body"]),
            )
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Corrupt cache record: {e}") from e


class CacheResponse(BaseModel):
    """What the pipeline answers a request with."""

    status_code: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_entry(cls, entry: CachedEntry) -> "CacheResponse":
        return cls(status_code=entry.status_code, headers=dict(entry.headers), body=entry.body)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], status_code: int = 200) -> "CacheResponse":
        return cls(
            status_code=status_code,
            headers={"content-type": "application/json; charset=utf-8"},
            body=json.dumps(payload, indent=2).encode("utf-8"),
        )


def normalize_headers(headers: Mapping[str, str] | Any) -> dict[str, str]:
    """Lower-case header names and drop transport-level headers."""
    return {
        name.lower(): value
        for name, value in headers.items()
        if name.lower() not in TRANSPORT_HEADERS
    }


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
