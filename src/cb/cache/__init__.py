"""
Cache package for client-side persistence.

This package provides:
- Key/value store adapter (kv_store.py): one SQLite file, one table per store
- Object cache (object_cache.py): JSON values in the ``keyval`` store
- Image cache (image_cache.py): remote images as data URLs in ``imageCache``
"""

from cb.cache.image_cache import (
    ImageCache,
    clear_image_cache,
    close_image_cache,
    encode_data_url,
    get_cached_image,
)
from cb.cache.kv_store import KVStore, close_store, get_store, kv_delete, kv_get, kv_set
from cb.cache.object_cache import clear_cache, get_cache, set_cache

__all__ = [
    "ImageCache",
    "KVStore",
    "clear_cache",
    "clear_image_cache",
    "close_image_cache",
    "close_store",
    "encode_data_url",
    "get_cache",
    "get_cached_image",
    "get_store",
    "kv_delete",
    "kv_get",
    "kv_set",
    "set_cache",
]
