"""
HTTP fetcher for the pages under audit.

Link probes are handled by LinkValidator; this module only downloads the
page whose markup is going to be scanned.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp
import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt, wait_exponential

from ..config.config import FetcherConfig
from ..exceptions import FetchError

logger = structlog.get_logger(__name__)

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})


class _RetryableResponse(Exception):
    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"HTTP {status}")


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (_RetryableResponse, asyncio.TimeoutError, aiohttp.ClientConnectionError))


class HttpPageFetcher:
    """Downloads page markup with retries on transient failures."""

    def __init__(self, config: Optional[FetcherConfig] = None, *, backoff_min: float = 1.0, backoff_max: float = 10.0):
        self.config = config or FetcherConfig()
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logger.bind(component="HttpPageFetcher")

    async def initialize(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                headers={"User-Agent": self.config.user_agent},
            )
            self.logger.info("HTTP page fetcher session initialized")

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "HttpPageFetcher":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch(self, url: str) -> bytes:
        """
        Fetch a page body.

        Raises:
            FetchError: On non-2xx responses or once retries are exhausted
        """
        if self.session is None:
            raise RuntimeError("HTTP page fetcher not initialized. Call initialize() first.")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception(_is_transient),
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._fetch_once(url, attempt.retry_state.attempt_number)
        except RetryError as e:
            cause = e.last_attempt.exception()
            status = cause.status if isinstance(cause, _RetryableResponse) else None
            raise FetchError(url, f"gave up after {self.config.max_retries + 1} attempts: {cause}", status) from cause
        except aiohttp.ClientError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e

        raise FetchError(url, "no attempt was made")

    async def _fetch_once(self, url: str, attempt: int) -> bytes:
        if self.session is None:
            raise RuntimeError("HTTP page fetcher not initialized. Call initialize() first.")
        async with self.session.get(url) as response:
            if response.status in RETRYABLE_STATUSES:
                self.logger.info("Retrying page fetch", url=url, status=response.status, attempt=attempt)
                raise _RetryableResponse(response.status)
            if response.status >= 400:
                raise FetchError(url, f"HTTP {response.status}", response.status)
            body = await response.read()

        self.logger.debug("Page fetched", url=url, status=response.status, bytes=len(body), attempt=attempt)
        return body
