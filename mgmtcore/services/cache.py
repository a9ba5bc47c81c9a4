"""
Cache - Bounded in-memory cache with LRU eviction and per-entry TTL.

Features:
- Least-recently-used eviction once max_size entries are stored
- TTL per entry, checked lazily on every read (no background sweeper)
- Can be disabled at runtime; disabling drops every entry
- Thread-safe: every operation runs under a single lock
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, Iterator, TypeVar

from loguru import logger

T = TypeVar("T")

Clock = Callable[[], float]


class CacheProfile:
    """TTL profiles for data that changes at different rates."""

    FAST = timedelta(seconds=30)  # connections, real-time metrics
    MEDIUM = timedelta(minutes=5)  # project info, database stats
    SLOW = timedelta(hours=1)  # extensions, regions, plans
    STATIC = timedelta(hours=24)  # API schema, supported features


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    stored_at: float
    ttl: timedelta

    def is_expired(self, now: float) -> bool:
        """Check if entry is past its TTL."""
        return now - self.stored_at > self.ttl.total_seconds()


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class Cache:
    """
    In-memory LRU cache with lazy TTL expiry.

    Usage:
        cache = Cache(max_size=100, default_ttl=timedelta(minutes=5))

        value = cache.get("project:abc")
        if value is None:
            value = await fetch_project("abc")
            cache.set("project:abc", value, ttl=CacheProfile.SLOW)
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: timedelta = timedelta(minutes=5),
        enabled: bool = True,
        clock: Clock = time.monotonic,
        debug: bool = False,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._enabled = enabled
        self._clock = clock
        self._debug = debug
        self._lock = threading.Lock()
        self._stats = CacheStats()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Returns ``default`` when the key is absent, expired or the cache is
        disabled. A hit marks the key as most recently used.
        """
        with self._lock:
            if not self._enabled:
                return default

            entry = self._lookup(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key}")
                return default

            self._stats.hits += 1
            self._log(f"HIT: {key}")
            return entry.data

    def has(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        with self._lock:
            if not self._enabled:
                return False
            return self._lookup(key) is not None

    def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Time to live (uses default if not specified)
        """
        ttl = ttl if ttl is not None else self._default_ttl
        entry = CacheEntry(data=data, stored_at=self._clock(), ttl=ttl)

        with self._lock:
            if not self._enabled:
                return

            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self._max_size:
                self._evict_oldest()

            self._entries[key] = entry
            self._log(f"SET: {key} (TTL: {ttl.total_seconds()}s)")

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                self._log(f"DELETE: {key}")
                return True
            return False

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._log(f"CLEAR: {count} entries removed")

    def keys(self) -> Iterator[str]:
        """Iterate over every stored key, expired or not."""
        with self._lock:
            snapshot = list(self._entries)
        return iter(snapshot)

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet removed."""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable caching. Disabling drops every entry."""
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self._entries.clear()
        logger.info(f"Cache {'enabled' if enabled else 'disabled'}")

    def _lookup(self, key: str) -> CacheEntry[Any] | None:
        """Return a live entry and refresh its recency. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._stats.expirations += 1
            self._log(f"EXPIRED: {key}")
            return None

        self._entries.move_to_end(key)
        return entry

    def _evict_oldest(self) -> None:
        """Evict the least recently used entry. Caller holds the lock."""
        if not self._entries:
            return

        oldest_key, _ = self._entries.popitem(last=False)
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key}")

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        with self._lock:
            self._stats.size = len(self._entries)
            self._stats.max_size = self._max_size
            return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Cache] {message}")
