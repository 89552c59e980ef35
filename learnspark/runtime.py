"""Caller-owned cache lifecycle: construction, background tasks, logging."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from learnspark.cache.background import CacheSweeper
from learnspark.cache.monitor import CacheHealthMonitor
from learnspark.cache.store import CacheStore
from learnspark.config import Settings

logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_dir: Path | None = None) -> None:
    """Configure console logging and, when *log_dir* is given, a rotating file.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory for ``cache.log``. No file handler when None.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check avoids matching subclasses (FileHandler, etc.)
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_dir / "cache.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class CacheRuntime:
    """A store plus the background tasks that maintain it.

    Background tasks are only created when ``settings.cache_enabled`` is set;
    a disabled runtime still hands out a working store.
    """

    def __init__(self, settings: Settings, store: CacheStore | None = None) -> None:
        self.settings = settings
        self.store = store if store is not None else CacheStore.from_settings(settings)
        self.sweeper: CacheSweeper | None = None
        self.monitor: CacheHealthMonitor | None = None
        if settings.cache_enabled:
            self.sweeper = CacheSweeper(self.store, settings.cache_sweep_interval_seconds)
            self.monitor = CacheHealthMonitor(
                self.store,
                interval_seconds=settings.cache_health_interval_seconds,
                min_hit_rate=settings.cache_min_hit_rate,
                max_memory_bytes=settings.cache_max_memory_bytes,
            )

    def start(self) -> None:
        """Start background tasks. Must be called from a running event loop."""
        for task in (self.sweeper, self.monitor):
            if task is not None:
                task.start()
        logger.info(
            "Cache runtime started (max_entries=%d, background=%s)",
            self.store.max_entries,
            self.settings.cache_enabled,
        )

    async def stop(self) -> None:
        """Stop background tasks and drop every cached entry."""
        for task in (self.sweeper, self.monitor):
            if task is not None:
                await task.stop()
        self.store.clear()
        logger.info("Cache runtime stopped")


@asynccontextmanager
async def cache_runtime(settings: Settings | None = None) -> AsyncIterator[CacheRuntime]:
    """Run a ``CacheRuntime`` for the duration of the ``async with`` block."""
    if settings is None:
        from learnspark.config import get_settings

        settings = get_settings()

    runtime = CacheRuntime(settings)
    runtime.start()
    try:
        yield runtime
    finally:
        await runtime.stop()
