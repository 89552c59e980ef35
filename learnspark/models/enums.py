from enum import StrEnum


class WarmStrategy(StrEnum):
    USER_SPECIFIC = "user-specific"
    POPULAR_CONTENT = "popular-content"
    PREDICTIVE = "predictive"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
