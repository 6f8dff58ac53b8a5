"""
Generic object cache over the ``keyval`` store.

Stores any JSON-serializable value under a caller-chosen key. Entries
never expire; they change only when overwritten or cleared. Callers own
the read-through: on a miss they fetch from the source of truth and call
set_cache themselves.
"""

from __future__ import annotations

from typing import Any

from cb.cache.kv_store import kv_delete, kv_get, kv_set
from cb.types import StoreName

DATA_STORE = StoreName.KEYVAL


async def set_cache(key: str, data: Any) -> None:
    """Store data under key. Errors are logged, never raised."""
    await kv_set(DATA_STORE, key, data)


async def get_cache(key: str) -> Any | None:
    """Return the cached value for key, or None on a miss or any error."""
    return await kv_get(DATA_STORE, key)


async def clear_cache(key: str) -> None:
    """Remove key from the cache. Clearing an absent key is a no-op."""
    await kv_delete(DATA_STORE, key)
