"""
Cache statistics.

Counts what happens to each store so that failures swallowed by the
best-effort cache functions stay visible:
- hits / misses on reads
- writes / deletes
- errors (storage, validation, encoding)
- image fetches and failed fetches
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from cb.types import StoreName


@dataclass
class StoreCounters:
    """Counters for a single store."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0
    fetches: int = 0
    fetch_failures: int = 0

    @property
    def hit_rate(self) -> float:
        """Fraction of reads served from the store."""
        reads = self.hits + self.misses
        return self.hits / reads if reads else 0.0


@dataclass
class CacheStats:
    """Process-wide counters, one StoreCounters per store."""

    stores: dict[StoreName, StoreCounters] = field(
        default_factory=lambda: {name: StoreCounters() for name in StoreName}
    )

    def for_store(self, store: StoreName) -> StoreCounters:
        return self.stores[store]

    def record(self, store: StoreName, counter: str, amount: int = 1) -> None:
        """Increment one named counter for a store."""
        counters = self.stores[store]
        setattr(counters, counter, getattr(counters, counter) + amount)

    def reset(self) -> None:
        for name in StoreName:
            self.stores[name] = StoreCounters()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict keyed by store name."""
        return {
            name.value: {**asdict(counters), "hit_rate": round(counters.hit_rate, 4)}
            for name, counters in self.stores.items()
        }


_stats = CacheStats()


def get_cache_stats() -> CacheStats:
    """Get the process-wide cache statistics."""
    return _stats
