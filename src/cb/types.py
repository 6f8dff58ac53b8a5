"""
Core types for the cache.

- StoreName: closed set of named partitions inside the cache database
- CacheEntry: one key/value pair read back from a store
- Helpers for validating store names and keys
- generate_id for time-ordered identifiers
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from uuid6 import uuid7

from cb.exceptions import ValidationError


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "cli").

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


class StoreName(str, Enum):
    """Named partitions inside the cache database."""

    KEYVAL = "keyval"
    IMAGE_CACHE = "imageCache"

    @property
    def table(self) -> str:
        """SQLite table backing this store."""
        return f'"{self.value}"'


@dataclass(frozen=True)
class CacheEntry:
    """A key paired with its cached value within one store."""

    store: StoreName
    key: str
    value: Any


def coerce_store(store: StoreName | str) -> StoreName:
    """Resolve a store name, rejecting anything outside StoreName.

    Raises:
        ValidationError: If the name is not a known store.
    """
    if isinstance(store, StoreName):
        return store
    try:
        return StoreName(store)
    except ValueError:
        raise ValidationError(
            f"Unknown store {store!r}",
            context={
                "field": "store",
                "value": store,
                "expected": [s.value for s in StoreName],
            },
        ) from None


def validate_key(key: Any) -> str:
    """Ensure a cache key is a non-empty string.

    Raises:
        ValidationError: If the key is empty or not a string.
    """
    if not isinstance(key, str) or not key:
        raise ValidationError(
            "Cache key must be a non-empty string",
            context={"field": "key", "value": key, "expected": "non-empty str"},
        )
    return key
