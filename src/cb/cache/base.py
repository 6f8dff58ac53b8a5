"""
Base classes for caching.

CacheBackend is the contract every persistent backend honours:
- get returns None for a miss and raises only for engine failures
- put replaces any existing entry atomically (last write wins)
- delete is idempotent
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from cb.types import StoreName


class CacheBackend(ABC):
    """Abstract interface for store-partitioned key/value backends."""

    @abstractmethod
    async def open(self) -> None:
        """Open the backend; safe to call repeatedly and concurrently."""
        ...

    @abstractmethod
    async def get(self, store: StoreName | str, key: str) -> Any | None:
        """Get a value from a store, or None if absent."""
        ...

    @abstractmethod
    async def put(self, store: StoreName | str, key: str, value: Any) -> None:
        """Set a value in a store, replacing any previous value."""
        ...

    @abstractmethod
    async def delete(self, store: StoreName | str, key: str) -> None:
        """Delete a value from a store; no-op if absent."""
        ...

    @abstractmethod
    async def exists(self, store: StoreName | str, key: str) -> bool:
        """Check if a key exists in a store."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""
        ...
