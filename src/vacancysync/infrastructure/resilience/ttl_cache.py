"""
In-memory TTL cache with approximate LRU eviction.

Thread-safe key/value store used for file fingerprints. Entries expire
after their TTL; when the cache grows beyond ``max_items`` the least
recently accessed entries are evicted. An optional daemon sweeper removes
expired entries every ``cleanup_interval`` seconds.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheEntry(Generic[V]):
    """
    Cache entry with TTL support.

    Attributes:
        value: Cached value
        expires_at: Clock reading after which the entry is stale
        last_accessed: Clock reading of the last get/set
    """

    value: V
    expires_at: float
    last_accessed: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Hit/miss/eviction counters for monitoring."""

    hits: int = 0
    misses: int = 0
    puts: int = 0
    evictions: int = 0
    expirations: int = 0

    def get_hit_rate(self) -> float:
        """Get cache hit rate (0.0 to 1.0)."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def copy(self) -> CacheStats:
        return CacheStats(self.hits, self.misses, self.puts, self.evictions, self.expirations)


class TTLCache(Generic[K, V]):
    """
    Bounded TTL cache.

    Args:
        name: Label used in log records
        default_ttl: Seconds an entry lives unless ``set`` overrides it
        cleanup_interval: Seconds between sweeper passes
        max_items: Size above which least-recently-accessed entries are evicted
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        name: str = "cache",
        default_ttl: float = 3600.0,
        cleanup_interval: float = 900.0,
        max_items: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.name = name
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self.max_items = max_items
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = threading.RLock()
        self._add_lock = threading.Lock()
        self._stats = CacheStats()
        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

    def get(self, key: K) -> V | None:
        """Return the live value for ``key`` or None on a miss."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def _lookup(self, key: K):
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._stats.misses += 1
                return _MISSING
            if entry.is_expired(now):
                del self._entries[key]
                self._stats.expirations += 1
                self._stats.misses += 1
                return _MISSING
            entry.last_accessed = now
            self._stats.hits += 1
            return entry.value

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """Insert or replace ``key``; evicts overflow afterwards."""
        with self._lock:
            now = self._clock()
            lifetime = self.default_ttl if ttl is None else ttl
            self._entries[key] = CacheEntry(value, now + lifetime, now)
            self._stats.puts += 1
            if len(self._entries) > self.max_items:
                self._trim()

    def remove(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug("Cache '%s' cleared (%d entries)", self.name, count)

    def get_or_add(self, key: K, factory: Callable[[], V], ttl: float | None = None) -> V:
        """
        Return the cached value or build, store and return a new one.

        The miss path is serialized so concurrent callers for the same key
        invoke ``factory`` once.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value
        with self._add_lock:
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and not entry.is_expired(self._clock()):
                    entry.last_accessed = self._clock()
                    self._stats.hits += 1
                    return entry.value
            value = factory()
            self.set(key, value, ttl)
            return value

    def sweep(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)
        if expired:
            logger.debug("Cache '%s' swept %d expired entries", self.name, len(expired))
        return len(expired)

    def _trim(self) -> None:
        overflow = len(self._entries) - self.max_items
        if overflow <= 0:
            return
        victims = sorted(self._entries.items(), key=lambda kv: kv[1].last_accessed)[:overflow]
        for key, _ in victims:
            del self._entries[key]
        self._stats.evictions += len(victims)
        logger.debug("Cache '%s' evicted %d entries (limit %d)", self.name, len(victims), self.max_items)

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return self._stats.copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the periodic sweep thread (no-op if already running)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name=f"{self.name}-sweeper", daemon=True
        )
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            try:
                self.sweep()
            except Exception as e:  # pylint: disable=broad-except
                logger.warning("Cache '%s' sweep failed: %s", self.name, e)

    def close(self) -> None:
        """Stop the sweeper and drop every entry."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None
        self.clear()
