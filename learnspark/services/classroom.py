"""Read-through caching of classroom records fetched from the hosted backend."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from learnspark.cache.store import DEPS_PREFIX, CacheStore

logger = logging.getLogger(__name__)

STUDENTS_TTL_MS = 2 * 60 * 1000
ASSESSMENTS_TTL_MS = 3 * 60 * 1000
PERFORMANCE_TTL_MS = 1 * 60 * 1000
GOALS_TTL_MS = 2 * 60 * 1000


class ClassroomDataSource(Protocol):
    """The backend queries the cache sits in front of."""

    async def fetch_students(self, teacher_id: str) -> list[dict[str, Any]]: ...

    async def fetch_assessments(self, teacher_id: str) -> list[dict[str, Any]]: ...

    async def fetch_student_performance(self, student_id: str) -> dict[str, Any]: ...

    async def fetch_goals(self, student_id: str) -> list[dict[str, Any]]: ...


def student_dependency(student_id: str) -> str:
    return f"student:{student_id}"


class ClassroomCache:
    """Cached accessors for students, assessments, performance and goals.

    Per-student records are registered against ``student:<id>`` so that
    ``forget_student`` drops everything derived from that student at once.

    Args:
        store: Cache to read from and populate.
        source: Backend used on a miss.
    """

    def __init__(self, store: CacheStore, source: ClassroomDataSource) -> None:
        self.store = store
        self.source = source

    async def _read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_ms: int,
        dependencies: list[str] | None = None,
    ) -> Any:
        cached = self.store.get(key)
        if cached is not None:
            return cached

        logger.debug("Cache miss for %s, fetching...", key)
        data = await loader()
        if dependencies:
            self.store.set_with_dependencies(key, data, dependencies, ttl_ms)
        else:
            self.store.set(key, data, ttl_ms)
        return data

    async def students(self, teacher_id: str) -> list[dict[str, Any]]:
        return await self._read_through(
            f"students:{teacher_id}",
            lambda: self.source.fetch_students(teacher_id),
            STUDENTS_TTL_MS,
        )

    async def assessments(self, teacher_id: str) -> list[dict[str, Any]]:
        return await self._read_through(
            f"assessments:{teacher_id}",
            lambda: self.source.fetch_assessments(teacher_id),
            ASSESSMENTS_TTL_MS,
        )

    async def student_performance(self, student_id: str) -> dict[str, Any]:
        return await self._read_through(
            f"performance:{student_id}",
            lambda: self.source.fetch_student_performance(student_id),
            PERFORMANCE_TTL_MS,
            [student_dependency(student_id)],
        )

    async def goals(self, student_id: str) -> list[dict[str, Any]]:
        return await self._read_through(
            f"goals:{student_id}",
            lambda: self.source.fetch_goals(student_id),
            GOALS_TTL_MS,
            [student_dependency(student_id)],
        )

    # ── Invalidation after mutations ─────────────────────────────────────────

    def _drop(self, key: str) -> None:
        """Delete exactly *key* along with its dependency record, if any."""
        self.store.delete(key)
        self.store.delete(f"{DEPS_PREFIX}{key}")

    def invalidate_student_data(self, teacher_id: str, student_id: str | None = None) -> None:
        """Drop the roster, and the per-student records when *student_id* is given."""
        self._drop(f"students:{teacher_id}")
        if student_id:
            self._drop(f"performance:{student_id}")
            self._drop(f"goals:{student_id}")

    def invalidate_assessment_data(self, teacher_id: str) -> None:
        self._drop(f"assessments:{teacher_id}")

    def invalidate_goal_data(self, student_id: str) -> None:
        self._drop(f"goals:{student_id}")

    def forget_student(self, student_id: str) -> int:
        """Drop every cached record registered against the student."""
        return self.store.invalidate_dependencies(student_dependency(student_id))
