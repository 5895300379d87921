"""Configuration management for the cache service."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(default="json", description="Log format (json or text)")
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    max_bytes: int = Field(default=10_485_760, description="Max size of log file in bytes")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data["level"] = os.environ.get("LOG_LEVEL", data.get("level", "INFO"))
        data["format"] = os.environ.get("LOG_FORMAT", data.get("format", "json"))
        if log_dir := os.environ.get("LOG_DIR"):
            data["log_dir"] = Path(log_dir)
        if max_bytes := os.environ.get("LOG_MAX_BYTES"):
            data["max_bytes"] = int(max_bytes)
        if backup_count := os.environ.get("LOG_BACKUP_COUNT"):
            data["backup_count"] = int(backup_count)
        super().__init__(**data)


class CacheConfig(BaseModel):
    """Engine bindings and per-deployment policy defaults."""

    default_engine: str = Field(default="kv", description="Engine used when a policy names none")
    default_policies: dict[str, str] = Field(
        default_factory=lambda: {"kv": "no-limit", "cache": "1d"},
        description="Policy applied per engine when the path carries no policy token",
    )
    stale_window_seconds: int = Field(
        default=600, description="Stale window used when a policy gives only an expiry"
    )
    refresh_grace_seconds: int = Field(
        default=60, description="Extra max-age granted to entries stored by a stale refresh"
    )
    kv_dir: Path = Field(default=Path(".cache/swr"), description="Directory of the KV store")
    edge_max_entries: int = Field(
        default=10_000, description="Maximum number of entries held by the edge engine"
    )

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data["default_engine"] = os.environ.get(
            "SWR_DEFAULT_ENGINE", data.get("default_engine", "kv")
        )
        if default_policy := os.environ.get("SWR_DEFAULT_POLICY"):
            policies = dict(data.get("default_policies") or {"kv": "no-limit", "cache": "1d"})
            policies[data["default_engine"]] = default_policy
            data["default_policies"] = policies
        if stale_window := os.environ.get("SWR_STALE_WINDOW"):
            data["stale_window_seconds"] = int(stale_window)
        if refresh_grace := os.environ.get("SWR_REFRESH_GRACE"):
            data["refresh_grace_seconds"] = int(refresh_grace)
        if kv_dir := os.environ.get("SWR_KV_DIR"):
            data["kv_dir"] = Path(kv_dir)
        if edge_max := os.environ.get("SWR_EDGE_MAX_ENTRIES"):
            data["edge_max_entries"] = int(edge_max)
        super().__init__(**data)

    def default_policy(self, engine: str | None = None) -> str:
        """Policy token applied when a request path has none."""
        return self.default_policies.get(engine or self.default_engine, "no-limit")


class OriginConfig(BaseModel):
    """Settings for the HTTP client talking to origins."""

    scheme: str = Field(default="https", description="Scheme used to rebuild target URLs")
    timeout: float = Field(default=30.0, description="Origin request timeout in seconds")
    user_agent: str = Field(default="swr-cache/1.0", description="User-Agent sent to origins")
    follow_redirects: bool = Field(default=True, description="Follow origin redirects")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        if scheme := os.environ.get("SWR_ORIGIN_SCHEME"):
            data["scheme"] = scheme
        if timeout := os.environ.get("SWR_ORIGIN_TIMEOUT"):
            data["timeout"] = float(timeout)
        if user_agent := os.environ.get("SWR_USER_AGENT"):
            data["user_agent"] = user_agent
        if follow := os.environ.get("SWR_FOLLOW_REDIRECTS"):
            data["follow_redirects"] = follow.lower() in ("true", "1", "yes")
        super().__init__(**data)


class RevalidationConfig(BaseModel):
    """Background revalidation behaviour."""

    task_lifetime: Literal["process", "request"] = Field(
        default="process",
        description=(
            "'process' when background tasks outlive the response that spawned them, "
            "'request' when the host may suspend them once the response is sent"
        ),
    )
    settle_seconds: float = Field(
        default=2.0, description="Hold time before a request-bound task signals completion"
    )
    coalesce: bool = Field(
        default=True, description="Allow at most one background task per cache key"
    )

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        if lifetime := os.environ.get("SWR_TASK_LIFETIME"):
            data["task_lifetime"] = lifetime
        if settle := os.environ.get("SWR_SETTLE_SECONDS"):
            data["settle_seconds"] = float(settle)
        if coalesce := os.environ.get("SWR_COALESCE"):
            data["coalesce"] = coalesce.lower() in ("true", "1", "yes")
        super().__init__(**data)


class ServerConfig(BaseModel):
    """Listening address of the HTTP server."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8787, description="Bind port")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data["host"] = os.environ.get("SWR_HOST", data.get("host", "127.0.0.1"))
        if port := os.environ.get("SWR_PORT"):
            data["port"] = int(port)
        super().__init__(**data)


class Settings(BaseModel):
    """Main application settings."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    origin: OriginConfig = Field(default_factory=OriginConfig)
    revalidation: RevalidationConfig = Field(default_factory=RevalidationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize settings, optionally loading from .env file."""
        if env_file := os.environ.get("ENV_FILE"):
            self._load_env_file(Path(env_file))
        super().__init__(**data)

    def _load_env_file(self, env_file: Path) -> None:
        """Load environment variables from .env file."""
        if not env_file.exists():
            return
        load_dotenv(env_file, override=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the singleton settings instance."""
    return Settings()
