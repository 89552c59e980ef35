"""Cache-aware wrapper around ``httpx.AsyncClient`` for read-only JSON APIs.

GET responses are served from the cache while fresh, refreshed on expiry,
and served stale when the upstream is unreachable.  Callers opt in by routing
their reads through ``CachedHTTPClient``; nothing global is patched.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from learnspark.cache.store import CacheStore
from learnspark.clients.resilience import (
    APIError,
    CircuitBreaker,
    TransientAPIError,
    classify_response,
    log_retry_attempt,
)
from learnspark.config import DEFAULT_API_TTL_RULES, Settings
from learnspark.models.cache import CachedResponse
from learnspark.models.enums import WarmStrategy

logger = logging.getLogger(__name__)

API_PREFIX = "api:"
PRELOAD_PREFIX = "preload:"

WARM_ENDPOINTS: dict[WarmStrategy, list[str]] = {
    WarmStrategy.USER_SPECIFIC: [
        "/api/students",
        "/api/recent-assessments",
        "/api/dashboard-stats",
    ],
    WarmStrategy.POPULAR_CONTENT: [
        "/api/skills/categories",
        "/api/assessment-templates",
        "/api/grade-levels",
    ],
    WarmStrategy.PREDICTIVE: [
        "/api/upcoming-assessments",
        "/api/recommended-goals",
        "/api/insights/trending",
    ],
}


class CachedHTTPClient:
    """Read-through JSON cache with stale-on-error fallback.

    Entries are kept for ``ttl + stale_grace_ms`` so that a payload past its
    freshness window can still be served while the network is failing.

    Args:
        store: Cache backing the responses.
        client: Client to send requests with. One is created (and owned) if omitted.
        base_url: Base URL for the owned client.
        ttl_rules: Ordered ``substring -> ttl_ms`` rules matched against the URL.
        default_ttl_ms: TTL when no rule matches. Defaults to the store's default.
        stale_grace_ms: How long past freshness a payload may still be served on failure.
        cacheable_path: Only URLs containing this are cached. Empty caches everything.
        retry_attempts: Attempts per fetch for transient failures.
        retry_backoff: Exponential backoff multiplier in seconds.
        breaker: Circuit breaker guarding the upstream.
    """

    def __init__(
        self,
        store: CacheStore,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = "",
        ttl_rules: dict[str, int] | None = None,
        default_ttl_ms: int | None = None,
        stale_grace_ms: int = 60 * 60 * 1000,
        cacheable_path: str = "/api/",
        retry_attempts: int = 3,
        retry_backoff: float = 1.0,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.store = store
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self.ttl_rules = dict(DEFAULT_API_TTL_RULES if ttl_rules is None else ttl_rules)
        self.default_ttl_ms = default_ttl_ms or store.default_ttl_ms
        self.stale_grace_ms = stale_grace_ms
        self.cacheable_path = cacheable_path
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self.breaker = breaker or CircuitBreaker("api", fail_max=5, reset_timeout=60.0)

    @classmethod
    def from_settings(
        cls,
        store: CacheStore,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> "CachedHTTPClient":
        return cls(
            store,
            client,
            base_url=settings.api_base_url,
            ttl_rules=settings.api_ttl_rules,
            default_ttl_ms=settings.cache_default_ttl_ms,
            stale_grace_ms=settings.api_stale_grace_ms,
            retry_attempts=settings.api_retry_attempts,
        )

    # ── Keys & TTLs ──────────────────────────────────────────────────────────

    @staticmethod
    def cache_key(url: str, params: dict[str, Any] | None = None) -> str:
        """Build the cache key for a GET; params are sorted so order is irrelevant."""
        if params:
            url = f"{url}?{urlencode(sorted(params.items()))}"
        return f"{API_PREFIX}{url}"

    def ttl_for(self, url: str) -> int:
        """Return the freshness TTL for *url* from the first matching rule."""
        for fragment, ttl_ms in self.ttl_rules.items():
            if fragment in url:
                return ttl_ms
        return self.default_ttl_ms

    def is_cacheable(self, url: str) -> bool:
        return self.cacheable_path in url

    # ── Requests ─────────────────────────────────────────────────────────────

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET *url* and return its decoded JSON body, using the cache when possible.

        Raises:
            PermanentAPIError: On 4xx responses (never served stale).
            TransientAPIError: On 5xx/429 after retries with nothing cached.
            CircuitOpenError: When the breaker is open and nothing is cached.
            httpx.TransportError: On network failure with nothing cached.
        """
        key = self.cache_key(url, params)
        cached = self.store.peek(key)
        if isinstance(cached, CachedResponse) and cached.is_fresh(self.store.now()):
            # Counts the hit and refreshes recency
            self.store.get(key)
            return cached.payload
        self.store.record_miss(key)

        try:
            response = await self._fetch(url, params)
        except (httpx.TransportError, APIError) as exc:
            stale_ok = isinstance(exc, httpx.TransportError) or exc.allows_stale
            if stale_ok and isinstance(cached, CachedResponse):
                logger.warning("Network failed, serving stale cache: %s (%s)", url, exc)
                return cached.payload
            raise

        payload = response.json()
        full_url = str(response.request.url)
        if self.is_cacheable(full_url):
            ttl_ms = self.ttl_for(full_url)
            self.store.set(
                key,
                CachedResponse(
                    url=full_url,
                    payload=payload,
                    fetched_at=self.store.now(),
                    ttl_ms=ttl_ms,
                ),
                ttl_ms + self.stale_grace_ms,
            )
        return payload

    async def _fetch(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        self.breaker.ensure_closed()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type((TransientAPIError, httpx.TransportError)),
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=self.retry_backoff, max=10),
                before_sleep=log_retry_attempt,
                reraise=True,
            ):
                with attempt:
                    response = await self.client.get(url, params=params)
                    classify_response(response)
        except (TransientAPIError, httpx.TransportError):
            self.breaker.record_failure()
            raise

        self.breaker.record_success()
        return response

    # ── Warming ──────────────────────────────────────────────────────────────

    async def preload(self, endpoints: list[str]) -> dict[str, bool]:
        """Fetch *endpoints* concurrently and keep each under ``preload:<endpoint>``.

        Failures are logged and reported as ``False``; they never raise.
        """
        results = await asyncio.gather(*(self._preload_one(e) for e in endpoints))
        return dict(zip(endpoints, results, strict=True))

    async def _preload_one(self, endpoint: str) -> bool:
        try:
            payload = await self.get_json(endpoint)
        except (APIError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to preload %s: %s", endpoint, exc)
            return False
        self.store.set(f"{PRELOAD_PREFIX}{endpoint}", payload, self.ttl_for(endpoint))
        logger.debug("Preloaded: %s", endpoint)
        return True

    async def warm(
        self, strategy: WarmStrategy = WarmStrategy.POPULAR_CONTENT
    ) -> dict[str, bool]:
        """Preload the endpoint set associated with *strategy*."""
        return await self.preload(WARM_ENDPOINTS[WarmStrategy(strategy)])

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Close the underlying client if this wrapper created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "CachedHTTPClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
