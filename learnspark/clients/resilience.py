"""Upstream failure handling for the cached HTTP client.

Every error raised here says whether the caller may answer with a stale
cached payload instead: an outage (5xx, 429, timeouts, an open breaker) may
be papered over, a rejected request (4xx) may not.
"""

import logging
import time
from collections.abc import Callable
from enum import StrEnum

from tenacity import RetryCallState

logger = logging.getLogger(__name__)


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class APIError(Exception):
    """Base class for upstream API errors."""

    allows_stale = False


class TransientAPIError(APIError):
    """The upstream is struggling (408, 429, 5xx); worth a retry, then a stale answer."""

    allows_stale = True


class PermanentAPIError(APIError):
    """The upstream rejected the request; retrying or serving stale data would hide a bug."""


class AuthError(PermanentAPIError):
    """Credentials were refused (401)."""


class CircuitOpenError(APIError):
    """The breaker is shedding calls, so only cached data can be served."""

    allows_stale = True


TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def classify_response(response: object) -> None:
    """Translate a non-success status into the matching ``APIError``.

    Args:
        response: An object with a ``status_code`` attribute (e.g. httpx.Response).

    Raises:
        AuthError: On 401.
        TransientAPIError: On 408, 429 and any 5xx.
        PermanentAPIError: On any other 4xx.
    """
    status = getattr(response, "status_code", None)
    if status is None or 200 <= status < 400:
        return

    url = getattr(response, "url", "upstream")
    if status == 401:
        raise AuthError(f"{url} refused credentials (HTTP {status})")
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        raise TransientAPIError(f"{url} unavailable (HTTP {status})")
    raise PermanentAPIError(f"{url} rejected request (HTTP {status})")


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` hook: note a failed refetch before the next try."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Refetch attempt %d failed (%s); retrying before falling back to cache",
        retry_state.attempt_number,
        exc,
    )


# ── Circuit Breaker ──────────────────────────────────────────────────────────


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops refetching from an upstream that keeps failing.

    While open, ``ensure_closed`` raises ``CircuitOpenError`` and the cached
    client answers from whatever it still holds. After ``reset_timeout`` one
    trial refetch is let through (half-open); its outcome closes or re-opens
    the circuit.

    Args:
        name: Upstream name used in log lines.
        fail_max: Consecutive failed refetches before opening.
        reset_timeout: Seconds to stay open before the trial refetch.
        clock: Zero-argument callable returning seconds. Defaults to the monotonic clock.
    """

    def __init__(
        self,
        name: str,
        fail_max: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.name = name
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout
        self._clock = clock or time.monotonic

        self._state = CircuitState.CLOSED
        self._fail_count = 0
        self._opened_at = 0.0
        self.shed_count = 0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit '%s' half-open; allowing a trial refetch", self.name)
        return self._state

    def ensure_closed(self) -> None:
        """Raise ``CircuitOpenError`` while refetches are being shed."""
        if self.state == CircuitState.OPEN:
            self.shed_count += 1
            raise CircuitOpenError(f"Circuit '{self.name}' is open; serving cached data only")

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit '%s' closed; upstream recovered", self.name)
        self._fail_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._fail_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._open("trial refetch failed")
        elif self._state == CircuitState.CLOSED and self._fail_count >= self.fail_max:
            self._open(f"{self._fail_count} consecutive failures")

    def _open(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning("Circuit '%s' opened (%s); falling back to cache", self.name, reason)
