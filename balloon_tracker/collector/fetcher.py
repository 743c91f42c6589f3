"""Fetcher for CoderOJ standings pages."""

import asyncio
import logging
from contextlib import nullcontext
from typing import Callable

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

from balloon_tracker.collector.error_handler import with_exponential_backoff
from balloon_tracker.config import FetchConfig
from balloon_tracker.errors import FetchError

logger = logging.getLogger(__name__)


class StandingsFetcher:
    """Performs a single GET of a standings page, with timeout and bounded retries."""

    def __init__(
        self,
        config: FetchConfig,
        prometheus_exporter=None,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Fetch configuration (timeout, retries, user agent)
            prometheus_exporter: Optional Prometheus exporter for metrics
            session_factory: Factory for the aiohttp session used per request
        """
        self.config = config
        self.prometheus_exporter = prometheus_exporter
        self.session_factory = session_factory
        self._get_with_retries = with_exponential_backoff(
            max_retries=config.max_retries,
            initial_backoff=config.initial_backoff_sec,
        )(self._get_text)

    async def fetch(self, url: str) -> str:
        """
        Fetch the raw markup of a standings page.

        Raises:
            FetchError: If the page could not be retrieved
        """
        logger.info(f"Scraping contest: {url}")

        timer = self.prometheus_exporter.time_fetch() if self.prometheus_exporter else None
        try:
            with timer if timer else nullcontext():
                return await self._get_with_retries(url)
        except ClientResponseError as e:
            self._record_error("5xx" if 500 <= e.status < 600 else str(e.status))
            raise FetchError(url, f"HTTP {e.status} {e.message}", status=e.status) from e
        except asyncio.TimeoutError as e:
            self._record_error("timeout")
            raise FetchError(url, f"timed out after {self.config.timeout_sec}s") from e
        except aiohttp.ClientError as e:
            self._record_error("connection")
            raise FetchError(url, str(e) or type(e).__name__) from e

    async def _get_text(self, url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_sec)
        headers = {"User-Agent": self.config.user_agent}
        async with self.session_factory(timeout=timeout, headers=headers) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                return await response.text(errors="replace")

    def _record_error(self, error_type: str) -> None:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_fetch_error(error_type)
