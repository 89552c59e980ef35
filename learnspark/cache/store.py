"""In-memory cache with per-entry TTL, LRU eviction, and dependency invalidation."""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from pydantic_core import PydanticSerializationError, to_json

from learnspark.cache.errors import CacheConfigError
from learnspark.config import Settings
from learnspark.models.cache import CacheItemStats, CacheStats

logger = logging.getLogger(__name__)

DEPS_PREFIX = "deps:"

DEFAULT_MAX_ENTRIES = 100
DEFAULT_TTL_MS = 5 * 60 * 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def estimate_size(value: Any) -> int:
    """Approximate the memory footprint of *value* as its JSON byte length.

    Values that cannot be serialized (cycles, unknown types) count as 0.
    """
    try:
        return len(to_json(value))
    except (PydanticSerializationError, ValueError, TypeError):
        return 0


class CacheEntry:
    """A single stored value and its bookkeeping."""

    __slots__ = ("hit_count", "key", "last_accessed_at", "stored_at", "ttl_ms", "value")

    def __init__(self, key: str, value: Any, stored_at: float, ttl_ms: int) -> None:
        self.key = key
        self.value = value
        self.stored_at = stored_at
        self.ttl_ms = ttl_ms
        self.last_accessed_at = stored_at
        self.hit_count = 0

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl_ms


class CacheCounters:
    """Running hit/miss/set/eviction totals."""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.expirations = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage, 0 when nothing has been requested."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total * 100

    @property
    def miss_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.misses / total * 100


class CacheStore:
    """TTL cache with LRU eviction, pattern and dependency invalidation.

    Every public operation runs under one re-entrant lock, so a store can be
    shared between the event loop and worker threads.

    Args:
        max_entries: Maximum number of entries before eviction.
        default_ttl_ms: TTL applied when ``set`` is called without one.
        clock: Zero-argument callable returning the current time in
            milliseconds. Defaults to the monotonic clock.

    Raises:
        CacheConfigError: If ``max_entries`` or ``default_ttl_ms`` is not positive.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_entries <= 0:
            raise CacheConfigError(f"max_entries must be positive, got {max_entries}")
        if default_ttl_ms <= 0:
            raise CacheConfigError(f"default_ttl_ms must be positive, got {default_ttl_ms}")

        self.max_entries = max_entries
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock or _monotonic_ms
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self.counters = CacheCounters()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheStore":
        """Build a store from a ``Settings`` instance."""
        return cls(
            max_entries=settings.cache_max_entries,
            default_ttl_ms=settings.cache_default_ttl_ms,
        )

    def now(self) -> float:
        """Current clock reading in milliseconds."""
        return self._clock()

    # ── Core operations ──────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        """Store *value*, evicting the least-recently-used entry if at capacity.

        Capacity is checked before looking at *key*, so overwriting an
        existing key on a full store still evicts one entry.
        """
        effective_ttl = ttl_ms if ttl_ms is not None else self.default_ttl_ms
        with self._lock:
            if len(self._entries) >= self.max_entries:
                self._evict_lru()

            self._entries[key] = CacheEntry(key, value, self._clock(), effective_ttl)
            self.counters.sets += 1
        logger.debug("Cache SET: %s (TTL: %dms)", key, effective_ttl)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.counters.misses += 1
                logger.debug("Cache MISS: %s", key)
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self.counters.misses += 1
                self.counters.expirations += 1
                logger.debug("Cache EXPIRED: %s", key)
                return None

            entry.last_accessed_at = now
            entry.hit_count += 1
            self.counters.hits += 1
            logger.debug("Cache HIT: %s (hits: %d)", key, entry.hit_count)
            return entry.value

    def peek(self, key: str) -> Any | None:
        """Return a live value without touching recency or counters."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry.value

    def record_miss(self, key: str) -> None:
        """Count a miss for a lookup the caller resolved with ``peek``."""
        with self._lock:
            self.counters.misses += 1
        logger.debug("Cache MISS: %s", key)

    def delete(self, key: str) -> bool:
        """Remove exactly *key*. Returns True if the key existed."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("Cache DELETED: %s", key)
        return removed

    def invalidate(self, pattern: str) -> int:
        """Remove every key containing *pattern*. Returns the number removed."""
        with self._lock:
            doomed = [key for key in self._entries if pattern in key]
            for key in doomed:
                del self._entries[key]
        for key in doomed:
            logger.debug("Cache INVALIDATED: %s", key)
        return len(doomed)

    def clear(self) -> None:
        """Remove all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self.counters = CacheCounters()
        logger.debug("Cache cleared")

    # ── Dependencies ─────────────────────────────────────────────────────────

    def set_with_dependencies(
        self,
        key: str,
        value: Any,
        dependencies: Iterable[str],
        ttl_ms: int | None = None,
    ) -> None:
        """Store *value* and record that it depends on each name in *dependencies*.

        The dependency list lives in its own entry under ``deps:<key>`` and
        shares TTL and eviction with ordinary entries.
        """
        self.set(key, value, ttl_ms)
        self.set(f"{DEPS_PREFIX}{key}", list(dependencies), ttl_ms)

    def invalidate_dependencies(self, dependency: str) -> int:
        """Remove every key registered as depending on *dependency*.

        Returns the number of entries removed, dependency records included.
        """
        with self._lock:
            doomed: list[str] = []
            for key, entry in self._entries.items():
                if not key.startswith(DEPS_PREFIX):
                    continue
                if isinstance(entry.value, list) and dependency in entry.value:
                    doomed.append(key[len(DEPS_PREFIX):])
                    doomed.append(key)

            removed = 0
            for key in doomed:
                if self._entries.pop(key, None) is not None:
                    removed += 1
                    logger.debug("Cache DEPENDENCY INVALIDATED: %s", key)
        return removed

    # ── Maintenance ──────────────────────────────────────────────────────────

    def sweep_expired(self) -> int:
        """Drop every expired entry, read or not. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self.counters.expirations += len(expired)
        return len(expired)

    def _evict_lru(self) -> None:
        """Remove the entry with the oldest access time. Caller holds the lock."""
        oldest: CacheEntry | None = None
        for entry in self._entries.values():
            if oldest is None or entry.last_accessed_at < oldest.last_accessed_at:
                oldest = entry

        if oldest is not None:
            del self._entries[oldest.key]
            self.counters.evictions += 1
            logger.debug("Cache EVICTED (LRU): %s", oldest.key)

    # ── Observability ────────────────────────────────────────────────────────

    def get_stats(self, top_n: int = 10) -> CacheStats:
        """Summarise hit rates, estimated memory, and the most-read entries."""
        with self._lock:
            items = [
                CacheItemStats(
                    key=entry.key,
                    hits=entry.hit_count,
                    size_bytes=estimate_size(entry.value),
                )
                for entry in self._entries.values()
            ]
            counters = self.counters

            items.sort(key=lambda item: item.hits, reverse=True)
            return CacheStats(
                total_items=len(self._entries),
                total_memory_bytes_estimate=sum(item.size_bytes for item in items),
                hit_rate=counters.hit_rate,
                miss_rate=counters.miss_rate,
                top_items=items[:top_n],
                hits=counters.hits,
                misses=counters.misses,
                sets=counters.sets,
                evictions=counters.evictions,
                expirations=counters.expirations,
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    def __repr__(self) -> str:
        return (
            f"CacheStore(max_entries={self.max_entries}, "
            f"default_ttl_ms={self.default_ttl_ms}, size={len(self._entries)})"
        )
