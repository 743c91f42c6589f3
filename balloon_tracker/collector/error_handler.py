"""Error handling and retry logic for standings page requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]


class ConsecutiveErrorTracker:
    """Tracker for consecutive failed cycles with threshold checking."""

    def __init__(self, threshold: int, prometheus_exporter=None):
        """
        Initialize the error tracker.

        Args:
            threshold: Number of consecutive failures considered an outage
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.threshold = threshold
        self.consecutive_errors = 0
        self.prometheus_exporter = prometheus_exporter

    def record_error(self) -> None:
        """Record a failure and increment the counter."""
        self.consecutive_errors += 1
        logger.warning(f"Consecutive failures: {self.consecutive_errors}/{self.threshold}")

        if self.prometheus_exporter:
            self.prometheus_exporter.set_consecutive_failures(self.consecutive_errors)

    def record_success(self) -> None:
        """Record a success, resetting the consecutive failure count."""
        if self.consecutive_errors > 0:
            logger.info(f"Resetting consecutive failure counter (was {self.consecutive_errors})")
            self.consecutive_errors = 0

            if self.prometheus_exporter:
                self.prometheus_exporter.set_consecutive_failures(0)

    def threshold_reached(self) -> bool:
        """
        Check whether the failure threshold has been reached.

        Returns:
            True if the failure threshold has been reached
        """
        return self.consecutive_errors >= self.threshold


def is_retryable(error: BaseException) -> bool:
    """Server errors, rate limiting, timeouts and connection failures are transient."""
    if isinstance(error, ClientResponseError):
        return error.status == 429 or 500 <= error.status < 600
    return isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError))


def with_exponential_backoff(
    max_retries: int = 2,
    initial_backoff: float = 1.0,
    max_backoff: float = 16.0,
    backoff_factor: float = 2.0,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async requests with exponential backoff.

    Only transient errors are retried; client errors (4xx other than 429)
    and non-network exceptions are raised immediately.

    Args:
        max_retries: Maximum number of retry attempts
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = 0
            backoff = initial_backoff

            while True:
                try:
                    return await func(*args, **kwargs)

                except Exception as e:
                    if not is_retryable(e):
                        raise

                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    delay = backoff
                    if isinstance(e, ClientResponseError) and e.status == 429:
                        delay = _retry_after(e, default=backoff, cap=max_backoff)
                        logger.warning(f"Rate limited (429). Retrying in {delay:.2f}s ({retries+1}/{max_retries})")
                    else:
                        logger.warning(f"Error: {e!r}. Retrying in {delay:.2f}s ({retries+1}/{max_retries})")

                    await asyncio.sleep(delay)
                    retries += 1
                    backoff = min(backoff * backoff_factor, max_backoff)

        return cast(AsyncFunc[T], wrapper)
    return decorator


def _retry_after(error: ClientResponseError, default: float, cap: float) -> float:
    header: Optional[str] = error.headers.get("Retry-After") if error.headers else None
    try:
        return min(float(header), cap) if header is not None else default
    except ValueError:
        return default
