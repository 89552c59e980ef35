class CacheError(ValueError):
    """Base class for cache errors."""


class CacheConfigError(CacheError):
    """The cache was constructed with settings it cannot operate under."""
