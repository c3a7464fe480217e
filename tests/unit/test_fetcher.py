"""
Tests for page fetch retry behavior.
"""

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses

from siteaudit.config import FetcherConfig
from siteaudit.crawler import HttpPageFetcher
from siteaudit.exceptions import FetchError

URL = "https://example.com/page"


@pytest_asyncio.fixture
async def fetcher():
    """Fetcher with two retries and no backoff delay."""
    async with HttpPageFetcher(FetcherConfig(max_retries=2, timeout=5.0), backoff_min=0, backoff_max=0) as fetcher:
        yield fetcher


@pytest.mark.unit
class TestHttpPageFetcher:
    """Retry behavior via the public fetch API."""

    @pytest.mark.asyncio
    async def test_success(self, fetcher):
        with aioresponses() as m:
            m.get(URL, status=200, body="<html>ok</html>")
            assert await fetcher.fetch(URL) == b"<html>ok</html>"

    @pytest.mark.asyncio
    async def test_retry_on_503_then_success(self, fetcher):
        with aioresponses() as m:
            m.get(URL, status=503)
            m.get(URL, status=200, body="Success!")
            assert await fetcher.fetch(URL) == b"Success!"

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, fetcher):
        """1 initial attempt + 2 retries, then FetchError with the last status."""
        with aioresponses() as m:
            m.get(URL, status=429, repeat=True)
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(URL)

        assert exc_info.value.status == 429
        assert "3 attempts" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_no_retry_on_404(self, fetcher):
        with aioresponses() as m:
            m.get(URL, status=404)
            m.get(URL, status=200, body="never reached")
            with pytest.raises(FetchError) as exc_info:
                await fetcher.fetch(URL)

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self, fetcher):
        with aioresponses() as m:
            m.get(URL, exception=aiohttp.ClientConnectionError("reset"))
            m.get(URL, status=200, body="recovered")
            assert await fetcher.fetch(URL) == b"recovered"

    @pytest.mark.asyncio
    async def test_requires_initialization(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            await HttpPageFetcher().fetch(URL)
