import pytest

from learnspark.cache.store import CacheStore
from learnspark.config import reset_settings


class FakeClock:
    """Manually advanced millisecond clock for TTL and LRU tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep environment-derived settings from leaking between tests."""
    for name in ("LEARNSPARK_CACHE_ENABLED", "LEARNSPARK_CACHE_MAX_ENTRIES"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    """Small store on a fake clock: 3 entries, 1 second default TTL."""
    return CacheStore(max_entries=3, default_ttl_ms=1000, clock=clock)
