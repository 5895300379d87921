"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """Abstract base class for cache storage backends.

    Backends store opaque byte records with an optional time to live and evict
    expired records themselves.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Retrieve cached data by key.

        Args:
            key: The cache key to retrieve

        Returns:
            The cached data as bytes, or None if not found or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int | None = None) -> bool:
        """Store data in cache.

        Args:
            key: The cache key
            value: The data to cache as bytes
            ttl: Time to live in seconds (optional, None keeps the record until deleted)

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete cached data by key.

        Args:
            key: The cache key to delete

        Returns:
            True if deleted, False if not found
        """
        pass

    def generate_key(self, prefix: str, identifier: str) -> str:
        """Generate a namespaced cache key.

        Args:
            prefix: Key prefix (e.g., 'kv', 'edge')
            identifier: Unique identifier within the namespace

        Returns:
            Generated cache key
        """
        return f"{prefix}:{identifier}"
