"""
Concurrent link reachability checks with bounded parallelism.

Each link is probed with HEAD (falling back to GET when the target rejects
HEAD), redirects are followed hop by hop up to a configured bound, and the
outcome is classified rather than raised. Probes are never retried within a
pass; retrying across scans is the caller's policy.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp
import structlog

from ..config.config import LinkCheckConfig
from ..exceptions import ScanCancelledError
from ..observability import METRICS, histogram, increment
from .extractor import strip_fragment
from .models import Link, LinkCheckResult, LinkStatus

logger = structlog.get_logger(__name__)


class LinkValidator:
    """Classifies links as reachable, redirected or broken."""

    def __init__(self, config: Optional[LinkCheckConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or LinkCheckConfig()
        self.session = session
        self._owns_session = session is None
        self._fallback_statuses = frozenset(self.config.head_fallback_statuses)
        self.logger = logger.bind(component="LinkValidator")

    async def initialize(self) -> None:
        """Open the HTTP session used for probes."""
        if self.session is None:
            self.session = aiohttp.ClientSession(headers={"User-Agent": self.config.user_agent})
            self._owns_session = True

    async def close(self) -> None:
        """Close the HTTP session if this validator opened it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "LinkValidator":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def validate(
        self,
        links: Iterable[Link],
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[Link, LinkCheckResult]:
        """
        Check every link with at most ``max_workers`` probes in flight.

        Args:
            links: Links to check; duplicates are checked once
            cancel_event: When set, remaining probes are abandoned

        Returns:
            Exactly one result per unique link

        Raises:
            ScanCancelledError: If cancel_event was set before all checks finished
        """
        if self.session is None:
            raise RuntimeError("LinkValidator not initialized. Call initialize() first.")

        unique: List[Link] = list(dict.fromkeys(links))
        if not unique:
            return {}
        if cancel_event is not None and cancel_event.is_set():
            raise ScanCancelledError("Link validation cancelled before start")

        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def worker(link: Link) -> Tuple[Link, LinkCheckResult]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    raise ScanCancelledError("Link validation cancelled")
                return link, await self.check(link)

        self.logger.info("Validating links", links=len(unique), max_workers=self.config.max_workers)
        tasks = [asyncio.create_task(worker(link)) for link in unique]

        try:
            if cancel_event is None:
                pairs = await asyncio.gather(*tasks)
            else:
                pairs = await self._gather_unless_cancelled(tasks, cancel_event)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        results = dict(pairs)
        if len(results) != len(unique):
            raise RuntimeError(f"Link validation produced {len(results)} results for {len(unique)} links")
        return results

    async def _gather_unless_cancelled(
        self, tasks: List["asyncio.Task[Tuple[Link, LinkCheckResult]]"], cancel_event: asyncio.Event
    ) -> List[Tuple[Link, LinkCheckResult]]:
        gathered = asyncio.gather(*tasks)
        waiter = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({gathered, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if gathered in done:
            return gathered.result()

        self.logger.info("Link validation cancelled, abandoning remaining probes")
        gathered.cancel()
        try:
            await gathered
        except (asyncio.CancelledError, ScanCancelledError):
            pass
        raise ScanCancelledError("Link validation cancelled")

    async def check(self, link: Link) -> LinkCheckResult:
        """Probe one link, following redirects, and classify the outcome."""
        start_time = time.monotonic()
        current = link.url
        redirects = 0
        method = "HEAD"
        status: Optional[int] = None

        METRICS["link_checks_in_flight"].inc()
        try:
            while True:
                status, location, method = await self._probe(current)

                if 300 <= status < 400 and location:
                    if redirects >= self.config.max_redirects:
                        result = self._result(
                            link, LinkStatus.REDIRECT_CHAIN_EXCEEDED, current, status, redirects, method, start_time
                        )
                        break
                    current = strip_fragment(urljoin(current, location))
                    redirects += 1
                    continue

                result = self._result(
                    link, self._classify(status, redirects), current, status, redirects, method, start_time
                )
                break

        except asyncio.TimeoutError:
            result = self._result(
                link,
                LinkStatus.TIMEOUT,
                current,
                None,
                redirects,
                method,
                start_time,
                error=f"Timed out after {self.config.timeout}s",
            )
        except (aiohttp.ClientError, OSError) as e:
            result = self._result(
                link,
                LinkStatus.CONNECTION_FAILURE,
                current,
                None,
                redirects,
                method,
                start_time,
                error=f"{type(e).__name__}: {e}",
            )
        except (ValueError, TypeError) as e:
            # Malformed target URLs fail inside the client before any I/O
            result = self._result(
                link,
                LinkStatus.CONNECTION_FAILURE,
                current,
                None,
                redirects,
                method,
                start_time,
                error=f"{type(e).__name__}: {e}",
            )
        finally:
            METRICS["link_checks_in_flight"].dec()

        increment("link_checks_total", labels={"status": result.status.value})
        histogram("link_check_latency_seconds", result.elapsed)

        log = self.logger.warning if result.is_broken else self.logger.debug
        log(
            "Link checked",
            url=link.url,
            status=result.status.value,
            status_code=result.status_code,
            final_url=result.final_url,
            redirects=result.redirects,
            error=result.error,
        )
        return result

    async def _probe(self, url: str) -> Tuple[int, Optional[str], str]:
        """Issue one request without following redirects.

        Returns:
            (status code, Location header, method used)
        """
        if self.session is None:
            raise RuntimeError("LinkValidator not initialized. Call initialize() first.")
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        async with self.session.request("HEAD", url, allow_redirects=False, timeout=timeout) as response:
            status = response.status
            location = response.headers.get("Location")

        if status not in self._fallback_statuses:
            return status, location, "HEAD"

        self.logger.debug("HEAD rejected, retrying with GET", url=url, status=status)
        async with self.session.request("GET", url, allow_redirects=False, timeout=timeout) as response:
            return response.status, response.headers.get("Location"), "GET"

    @staticmethod
    def _classify(status: int, redirects: int) -> LinkStatus:
        if status >= 500:
            return LinkStatus.SERVER_ERROR
        if status >= 400:
            return LinkStatus.CLIENT_ERROR
        if status >= 300 or redirects > 0:
            return LinkStatus.REDIRECTED
        return LinkStatus.REACHABLE

    @staticmethod
    def _result(
        link: Link,
        status: LinkStatus,
        final_url: str,
        status_code: Optional[int],
        redirects: int,
        method: str,
        start_time: float,
        error: Optional[str] = None,
    ) -> LinkCheckResult:
        return LinkCheckResult(
            url=link.url,
            status=status,
            final_url=final_url,
            status_code=status_code,
            redirects=redirects,
            method=method,
            error=error,
            elapsed=time.monotonic() - start_time,
        )
