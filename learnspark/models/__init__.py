from learnspark.models.cache import (
    CachedResponse,
    CacheHealth,
    CacheItemStats,
    CacheStats,
)
from learnspark.models.enums import HealthStatus, WarmStrategy

__all__ = [
    "CacheHealth",
    "CacheItemStats",
    "CacheStats",
    "CachedResponse",
    "HealthStatus",
    "WarmStrategy",
]
