"""Rate limiting for Azure Resource Manager API calls."""

import logging
import os
import threading
import time
from contextlib import contextmanager
from email.utils import parsedate_to_datetime
from typing import Any, Generator, Mapping

from metrics import RATE_LIMIT_WAIT_SECONDS, THROTTLED_RESPONSES

logger = logging.getLogger(__name__)

# Pause used when a 429 carries no usable Retry-After header
DEFAULT_RETRY_AFTER_SECONDS = 30.0
MAX_RETRY_AFTER_SECONDS = 300.0


def retry_after_seconds(headers: Mapping[str, Any] | None) -> float:
    """Seconds to back off according to an ARM throttling response.

    Understands ``retry-after-ms``, ``x-ms-retry-after-ms`` and ``Retry-After``
    given either as seconds or as an HTTP date.
    """
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    seconds: float | None = None
    for header in ("retry-after-ms", "x-ms-retry-after-ms"):
        if header in lowered:
            try:
                seconds = float(lowered[header]) / 1000
                break
            except (TypeError, ValueError):
                pass
    if seconds is None and "retry-after" in lowered:
        value = str(lowered["retry-after"])
        try:
            seconds = float(value)
        except ValueError:
            try:
                seconds = parsedate_to_datetime(value).timestamp() - time.time()
            except (TypeError, ValueError):
                seconds = None
    if seconds is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    return min(max(seconds, 0.0), MAX_RETRY_AFTER_SECONDS)


class RateLimiter:
    """Thread-safe limiter for calls against Azure Resource Manager.

    Bounds concurrent calls and the request rate so reconciliations stay
    below the subscription's throttling limits. Once Azure answers with
    429 anyway, throttle() pauses every caller for the Retry-After period.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        requests_per_second: float = 20.0,
    ) -> None:
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum number of concurrent API calls
            requests_per_second: Maximum requests per second (averaged),
                0 disables the interval check
        """
        self._semaphore = threading.Semaphore(max_concurrent)
        self._min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0
        self._last_call_time = 0.0
        self._resume_at = 0.0
        self._lock = threading.Lock()
        self._max_concurrent = max_concurrent
        self._requests_per_second = requests_per_second

        logger.info(
            "Rate limiter initialized: max_concurrent=%d, requests_per_second=%.1f",
            max_concurrent,
            requests_per_second,
        )

    @contextmanager
    def acquire(self) -> Generator[None, None, None]:
        """Acquire rate limit slot (context manager).

        Usage:
            with rate_limiter.acquire():
                # make API call
        """
        wait_start = time.monotonic()
        self._semaphore.acquire()
        try:
            # Enforce minimum interval between requests
            with self._lock:
                now = time.monotonic()
                elapsed = now - self._last_call_time
                interval_wait = max(self._min_interval - elapsed, self._resume_at - now)

                if interval_wait > 0:
                    time.sleep(interval_wait)

                self._last_call_time = time.monotonic()

            total_wait = time.monotonic() - wait_start
            if total_wait > 0.001:  # Only record waits > 1ms
                RATE_LIMIT_WAIT_SECONDS.observe(total_wait)

            yield
        finally:
            self._semaphore.release()

    def throttle(self, seconds: float) -> None:
        """Hold back every caller for ``seconds`` after Azure throttled a request."""
        THROTTLED_RESPONSES.inc()
        with self._lock:
            self._resume_at = max(self._resume_at, time.monotonic() + seconds)
        logger.warning("Azure Resource Manager throttled requests, pausing calls for %.1fs", seconds)

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_concurrent={self._max_concurrent}, "
            f"requests_per_second={self._requests_per_second})"
        )


# Global rate limiter instance (initialized lazily)
_rate_limiter: RateLimiter | None = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter.

    Configuration via environment variables:
        AZURE_MAX_CONCURRENT_CALLS: Max concurrent API calls (default: 10)
        AZURE_REQUESTS_PER_SECOND: Max requests/second (default: 20)
    """
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            # Double-check after acquiring lock
            if _rate_limiter is None:
                max_concurrent = int(
                    os.environ.get("AZURE_MAX_CONCURRENT_CALLS", "10")
                )
                requests_per_second = float(
                    os.environ.get("AZURE_REQUESTS_PER_SECOND", "20")
                )
                _rate_limiter = RateLimiter(
                    max_concurrent=max_concurrent,
                    requests_per_second=requests_per_second,
                )

    return _rate_limiter
