"""File system based storage backend used as the durable KV store."""

import asyncio
import json
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from swr_cache.cache.storage.base import StorageBackend


def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` so readers see either the old file or the new one."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileSystemStorage(StorageBackend):
    """File system based cache storage with per-record expiry."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize filesystem storage.

        Args:
            cache_dir: Directory for cache storage. Defaults to .cache/swr
            clock: Returns the current time; used for expiry checks
        """
        self.cache_dir = cache_dir or Path.cwd() / ".cache" / "swr"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_dir = self.cache_dir / ".metadata"
        self.metadata_dir.mkdir(parents=True, exist_ok=True)
        self.clock = clock or (lambda: datetime.now(UTC))

    def _get_file_path(self, key: str) -> Path:
        """Get the file path for a cache key."""
        safe_key = key.replace(":", "_").replace("/", "_")
        return self.cache_dir / f"{safe_key}.cache"

    def _get_metadata_path(self, key: str) -> Path:
        """Get the metadata file path for a cache key."""
        safe_key = key.replace(":", "_").replace("/", "_")
        return self.metadata_dir / f"{safe_key}.json"

    async def get(self, key: str) -> bytes | None:
        """Retrieve cached data by key."""
        file_path = self._get_file_path(key)

        if not file_path.exists():
            return None

        metadata = await self.get_metadata(key)
        if metadata and metadata.get("expires_at"):
            expires_at = datetime.fromisoformat(metadata["expires_at"])
            if self.clock() > expires_at:
                await self.delete(key)
                return None

        try:
            return await asyncio.to_thread(file_path.read_bytes)
        except OSError:
            return None

    async def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Store data in cache.

        Metadata is written first so a record never becomes readable without
        its expiry.
        """
        file_path = self._get_file_path(key)
        metadata_path = self._get_metadata_path(key)

        now = self.clock()
        metadata: dict[str, Any] = {
            "created_at": now.isoformat(),
            "size": len(value),
            "key": key,
        }
        if ttl:
            metadata["expires_at"] = (now + timedelta(seconds=ttl)).isoformat()

        try:
            await asyncio.to_thread(
                _atomic_write, metadata_path, json.dumps(metadata, indent=2).encode("utf-8")
            )
            await asyncio.to_thread(_atomic_write, file_path, value)
            return True
        except OSError:
            return False

    async def delete(self, key: str) -> bool:
        """Delete cached data by key."""
        file_path = self._get_file_path(key)
        metadata_path = self._get_metadata_path(key)

        deleted = False
        try:
            if file_path.exists():
                await asyncio.to_thread(file_path.unlink, missing_ok=True)
                deleted = True

            if metadata_path.exists():
                await asyncio.to_thread(metadata_path.unlink, missing_ok=True)

            return deleted
        except OSError:
            return False

    async def get_metadata(self, key: str) -> dict[str, Any] | None:
        """Read the sidecar holding ``created_at``, ``expires_at`` and ``size``."""
        metadata_path = self._get_metadata_path(key)

        if not metadata_path.exists():
            return None

        try:
            content = await asyncio.to_thread(metadata_path.read_text)
            return json.loads(content)  # type: ignore[no-any-return]
        except (OSError, json.JSONDecodeError):
            return None
