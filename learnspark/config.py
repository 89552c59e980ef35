from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_TTL_RULES: dict[str, int] = {
    "students": 2 * 60 * 1000,
    "assessments": 2 * 60 * 1000,
    "skills": 10 * 60 * 1000,
    "categories": 10 * 60 * 1000,
}


class Settings(BaseSettings):
    """Cache configuration loaded from environment variables and .env file.

    All variables use the ``LEARNSPARK_`` prefix, e.g.
    ``LEARNSPARK_CACHE_MAX_ENTRIES=250``.  Durations that feed the cache
    itself are in milliseconds; background intervals are in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEARNSPARK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Background sweep and health monitor only run when enabled
    cache_enabled: bool = False

    cache_max_entries: int = 100
    cache_default_ttl_ms: int = 5 * 60 * 1000
    cache_sweep_interval_seconds: float = 60.0
    cache_health_interval_seconds: float = 300.0
    cache_min_hit_rate: float = 50.0
    cache_max_memory_bytes: int = 10 * 1024 * 1024

    # Cached HTTP client
    api_base_url: str = ""
    api_stale_grace_ms: int = 60 * 60 * 1000
    api_retry_attempts: int = 3
    api_ttl_rules: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_API_TTL_RULES)
    )

    log_level: str = "INFO"
    log_dir: Path | None = None


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
