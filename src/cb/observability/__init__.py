"""
Observability for the cache: hit/miss/error counters per store.
"""

from cb.observability.cache_stats import CacheStats, StoreCounters, get_cache_stats

__all__ = ["CacheStats", "StoreCounters", "get_cache_stats"]
