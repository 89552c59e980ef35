"""Fire-and-forget periodic work on the running event loop."""

import asyncio
import contextlib
import logging
from collections.abc import Callable

from learnspark.cache.store import CacheStore

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run a synchronous *action* every *interval_seconds* as an asyncio task.

    Args:
        name: Human-readable name for logging.
        interval_seconds: Delay between runs. The first run happens after one interval.
        action: Callable invoked on each tick. Exceptions are logged, not raised.
    """

    def __init__(
        self, name: str, interval_seconds: float, action: Callable[[], object]
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self._action = action
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"periodic:{self.name}"
        )
        logger.debug("Periodic task '%s' started (every %ss)", self.name, self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Periodic task '%s' stopped", self.name)

    def run_once(self) -> None:
        try:
            self._action()
        except Exception:
            logger.exception("Periodic task '%s' failed", self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.run_once()


class CacheSweeper(PeriodicTask):
    """Periodically removes expired entries that are never read again."""

    def __init__(self, store: CacheStore, interval_seconds: float = 60.0) -> None:
        super().__init__("cache-sweep", interval_seconds, self._sweep)
        self.store = store

    def _sweep(self) -> int:
        removed = self.store.sweep_expired()
        if removed:
            logger.info("Cache CLEANUP: removed %d expired items", removed)
        return removed
