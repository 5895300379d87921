"""Structured logging of cache failures and background revalidation outcomes.

Two record types go to the same rotating log file: :class:`StructuredError`
for failures the cache absorbed or answered with an error status, and
:class:`RevalidationRecord` for every background store or refresh, whatever
its outcome. Both carry the cache key, target URL, engine and the freshness
state that triggered the work, so one key's history can be followed across
requests.
"""

import json
import logging
import logging.handlers
import traceback
import uuid
from datetime import UTC, datetime
from enum import Enum
from functools import cache
from typing import Any

from pydantic import BaseModel, Field

from swr_cache.config import Settings, get_settings


class ErrorSeverity(Enum):
    """How badly a failure affected the response."""

    WARNING = "warning"  # absorbed: stale copy or miss served instead
    ERROR = "error"  # answered with an error status
    CRITICAL = "critical"  # unexpected, answered with 500

    def to_log_level(self) -> int:
        return getattr(logging, self.name)


class ErrorCategory(Enum):
    """Where a failure happened."""

    STORAGE = "storage"
    REVALIDATION = "revalidation"
    SYSTEM = "system"


class RevalidationOutcome(Enum):
    """How a background store or refresh ended."""

    STORED = "stored"
    REFUSED = "refused"  # non-2xx origin answer, or the engine declined the entry
    FAILED = "failed"
    CANCELLED = "cancelled"


class CacheLogRecord(BaseModel):
    """Fields shared by every record written about a cache key."""

    record_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    cache_key: str | None = None
    url: str | None = None
    engine: str | None = None
    freshness_state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StructuredError(CacheLogRecord):
    """A failure, with the exception class and traceback that caused it."""

    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    error_code: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    traceback: str | None = None


class RevalidationRecord(CacheLogRecord):
    """Result of one background task."""

    outcome: RevalidationOutcome
    duration_ms: int = 0

    @property
    def message(self) -> str:
        return f"Revalidation {self.outcome.value} for {self.cache_key}"

    @property
    def level(self) -> int:
        if self.outcome is RevalidationOutcome.FAILED:
            return logging.WARNING
        return logging.INFO


class JSONFormatter(logging.Formatter):
    """One JSON object per line; cache records are written as they are."""

    def format(self, record: logging.LogRecord) -> str:
        cache_record = getattr(record, "cache_record", None)
        if cache_record is None:
            cache_record = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "message": record.getMessage(),
                "module": record.module,
            }
        return json.dumps(cache_record)


def _text_line(record: CacheLogRecord, message: str) -> str:
    fields = record.model_dump(
        mode="json", exclude={"record_id", "timestamp", "traceback", "message"}, exclude_none=True
    )
    details = " | ".join(f"{name}: {value}" for name, value in fields.items() if value != {})
    return f"{message} | {details}" if details else message


class StructuredLogger:
    """Writes cache records to ``<log_dir>/<name>.log``."""

    def __init__(self, name: str, config: Settings | None = None) -> None:
        self.name = name
        self.config = config or get_settings()
        self.json_format = self.config.logging.format == "json"
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(getattr(logging, self.config.logging.level))
        logger.handlers.clear()

        log_dir = self.config.logging.log_dir
        log_dir.mkdir(exist_ok=True, parents=True)
        handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{self.name}.log",
            maxBytes=self.config.logging.max_bytes,
            backupCount=self.config.logging.backup_count,
        )
        handler.setFormatter(
            JSONFormatter()
            if self.json_format
            else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(handler)
        return logger

    def _emit(self, level: int, record: CacheLogRecord, message: str) -> None:
        if self.json_format:
            self.logger.log(level, message, extra={"cache_record": record.to_dict()})
        else:
            self.logger.log(level, _text_line(record, message))

    def log_error(self, error: StructuredError) -> None:
        self._emit(error.severity.to_log_level(), error, error.message)

    def log_exception(
        self,
        exception: Exception,
        category: ErrorCategory,
        severity: ErrorSeverity | None = None,
        cache_key: str | None = None,
        url: str | None = None,
        engine: str | None = None,
        freshness_state: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StructuredError:
        """Record ``exception`` with the traceback currently being handled."""
        error = StructuredError(
            message=str(exception),
            category=category,
            severity=severity or ErrorSeverity.ERROR,
            cache_key=cache_key,
            url=url,
            engine=engine,
            freshness_state=freshness_state,
            error_code=exception.__class__.__name__,
            metadata=metadata or {},
            traceback=traceback.format_exc(),
        )
        self.log_error(error)
        return error

    def log_revalidation(self, record: RevalidationRecord) -> None:
        self._emit(record.level, record, record.message)


@cache
def get_logger(name: str = "swr_cache") -> StructuredLogger:
    """Get or create a logger instance."""
    return StructuredLogger(name)
