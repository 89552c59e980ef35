"""Reporting models for the cache: statistics, health and cached HTTP payloads."""

from typing import Any

from pydantic import BaseModel, Field

from learnspark.models.enums import HealthStatus


class CacheItemStats(BaseModel):
    """Per-entry observability record."""

    key: str
    hits: int
    size_bytes: int


class CacheStats(BaseModel):
    """Snapshot returned by ``CacheStore.get_stats``.

    ``hit_rate`` and ``miss_rate`` are percentages (0-100).
    """

    total_items: int = 0
    total_memory_bytes_estimate: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    top_items: list[CacheItemStats] = Field(default_factory=list)
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def requests(self) -> int:
        return self.hits + self.misses


class CacheHealth(BaseModel):
    """Result of a single cache health check."""

    status: HealthStatus
    hit_rate: float
    total_items: int
    memory_bytes: int
    low_hit_rate: bool = False
    high_memory: bool = False

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / 1024 / 1024


class CachedResponse(BaseModel):
    """A JSON API payload plus the clock reading it was fetched at (ms)."""

    url: str
    payload: Any
    fetched_at: float
    ttl_ms: int

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at <= self.ttl_ms
