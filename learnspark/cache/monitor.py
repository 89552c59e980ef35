"""Cache health checks: hit-rate and memory thresholds."""

import logging

from learnspark.cache.background import PeriodicTask
from learnspark.cache.store import CacheStore
from learnspark.models.cache import CacheHealth
from learnspark.models.enums import HealthStatus

logger = logging.getLogger(__name__)

DEFAULT_MIN_HIT_RATE = 50.0
DEFAULT_MAX_MEMORY_BYTES = 10 * 1024 * 1024


def check_cache_health(
    store: CacheStore,
    min_hit_rate: float = DEFAULT_MIN_HIT_RATE,
    max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES,
) -> CacheHealth:
    """Compare current stats against thresholds and log the outcome.

    A low hit rate is only reported once the cache has served at least one
    request; an idle cache is not degraded.

    Args:
        store: Cache to inspect.
        min_hit_rate: Minimum acceptable hit rate, in percent.
        max_memory_bytes: Estimated footprint above which memory is flagged.

    Returns:
        CacheHealth with the flags and summary numbers.
    """
    stats = store.get_stats()

    low_hit_rate = stats.requests > 0 and stats.hit_rate < min_hit_rate
    high_memory = stats.total_memory_bytes_estimate > max_memory_bytes

    if low_hit_rate:
        logger.warning("Low cache hit rate detected: %.1f%%", stats.hit_rate)
    if high_memory:
        logger.warning("High cache memory usage: %d bytes", stats.total_memory_bytes_estimate)

    health = CacheHealth(
        status=HealthStatus.DEGRADED if low_hit_rate or high_memory else HealthStatus.HEALTHY,
        hit_rate=stats.hit_rate,
        total_items=stats.total_items,
        memory_bytes=stats.total_memory_bytes_estimate,
        low_hit_rate=low_hit_rate,
        high_memory=high_memory,
    )
    logger.info(
        "Cache health: hit_rate=%.1f%% items=%d memory=%.2fMB",
        health.hit_rate,
        health.total_items,
        health.memory_mb,
    )
    return health


class CacheHealthMonitor(PeriodicTask):
    """Runs ``check_cache_health`` on an interval and keeps the latest report."""

    def __init__(
        self,
        store: CacheStore,
        interval_seconds: float = 300.0,
        min_hit_rate: float = DEFAULT_MIN_HIT_RATE,
        max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES,
    ) -> None:
        super().__init__("cache-health", interval_seconds, self.check)
        self.store = store
        self.min_hit_rate = min_hit_rate
        self.max_memory_bytes = max_memory_bytes
        self.last_report: CacheHealth | None = None

    def check(self) -> CacheHealth:
        self.last_report = check_cache_health(
            self.store, self.min_hit_rate, self.max_memory_bytes
        )
        return self.last_report
