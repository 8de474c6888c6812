"""
TTL cache for search results and source lookups.

Entries are partitioned by network and keyed by operation plus a hash of the
call arguments. Expiry is evaluated against an injectable clock, and the
number of entries is bounded with least-recently-used eviction.
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Deterministic cache key."""
    operation: str
    network: str
    args_hash: str

    @classmethod
    def build(cls, operation: str, network: str, *args: Any) -> "CacheKey":
        """Build a key from an operation name, a network and call arguments."""
        encoded = json.dumps(args, sort_keys=True, default=str, separators=(",", ":"))
        return cls(
            operation=operation,
            network=network,
            args_hash=hashlib.sha256(encoded.encode()).hexdigest(),
        )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Cached value together with its insertion time and TTL class."""
    value: Any
    inserted_at: float
    ttl: float
    ttl_class: str

    def is_fresh(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl


class ResultCache:
    """Bounded TTL cache, partitioned by network."""

    MAX_ENTRIES: int = 1_000

    def __init__(
        self,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            max_entries: Maximum number of entries kept before evicting the oldest
            clock: Monotonic time source in seconds (injectable for tests)
        """
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._clock = clock
        # OrderedDict keeps recency order for LRU eviction
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey, default: Any = None) -> Any:
        """Return the cached value for ``key`` if it is still fresh."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default

        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key.operation} ({key.network})")
            return default

        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def set(self, key: CacheKey, value: Any, ttl: float, ttl_class: str = "default") -> None:
        """Store a value, evicting the least recently used entry when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cache entry {evicted.operation} ({evicted.network}) due to capacity")

        self._entries[key] = CacheEntry(
            value=value,
            inserted_at=self._clock(),
            ttl=ttl,
            ttl_class=ttl_class,
        )

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[T]],
        ttl: float,
        ttl_class: str = "default",
    ) -> T:
        """
        Return a fresh cached value or compute, store and return a new one.

        ``None`` results are returned but not stored: an absent value is
        looked up again on the next call.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            logger.debug(f"Cache hit: {key.operation} ({key.network})")
            return cached

        value = await compute()
        if value is not None:
            self.set(key, value, ttl, ttl_class)
        return value

    def clear(self, network: str | None = None) -> int:
        """
        Remove every entry, or every entry of one network.

        Returns:
            Number of entries removed
        """
        if network is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            stale = [key for key in self._entries if key.network == network]
            for key in stale:
                del self._entries[key]
            removed = len(stale)

        logger.debug(f"Cleared {removed} cache entries ({network or 'all networks'})")
        return removed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get_stats(self) -> dict:
        """
        Get current cache statistics.

        Returns:
            Dictionary with size and hit/miss counters
        """
        return {
            'entries': len(self._entries),
            'max_entries': self.max_entries,
            'hits': self.hits,
            'misses': self.misses,
        }
