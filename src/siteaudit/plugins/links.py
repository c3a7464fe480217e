"""
Link metric: finds links on a page and reports the ones that do not resolve cleanly.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import aiohttp
import structlog

from ..config.config import LinkCheckConfig
from ..document import DocumentModel
from ..links import Link, LinkCheckResult, LinkExtractor, LinkStatus, LinkValidator
from ..protocols import MarkUsage, PageContext

logger = structlog.get_logger(__name__)

BROKEN_LINK = "broken-link"
LINK_TIMEOUT = "link-timeout"
LINK_CONNECTION_FAILURE = "link-connection-failure"
REDIRECT_CHAIN_EXCEEDED = "redirect-chain-exceeded"
REDIRECTED_LINK = "redirected-link"

STATUS_MARKS: Dict[LinkStatus, str] = {
    LinkStatus.CLIENT_ERROR: BROKEN_LINK,
    LinkStatus.SERVER_ERROR: BROKEN_LINK,
    LinkStatus.TIMEOUT: LINK_TIMEOUT,
    LinkStatus.CONNECTION_FAILURE: LINK_CONNECTION_FAILURE,
    LinkStatus.REDIRECT_CHAIN_EXCEEDED: REDIRECT_CHAIN_EXCEEDED,
    LinkStatus.REDIRECTED: REDIRECTED_LINK,
}


class LinkMetric:
    """Checks every http(s) link on a page and marks broken or redirected ones."""

    name = "metric_links"
    version = 2
    description = "Detects broken, unreachable and redirected links."
    marks: Mapping[str, Tuple[str, str]] = {
        BROKEN_LINK: ("Broken link", "The link target answered with a 4xx or 5xx status."),
        LINK_TIMEOUT: ("Link timed out", "The link target did not answer within the request timeout."),
        LINK_CONNECTION_FAILURE: (
            "Link host unreachable",
            "The link host could not be resolved or refused the connection.",
        ),
        REDIRECT_CHAIN_EXCEEDED: ("Too many redirects", "The link redirects more times than allowed."),
        REDIRECTED_LINK: ("Redirected link", "The link works but redirects; point it at the final URL."),
    }

    def __init__(
        self,
        config: Optional[LinkCheckConfig] = None,
        *,
        extractor: Optional[LinkExtractor] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or LinkCheckConfig()
        self.extractor = extractor or LinkExtractor()
        self.session = session

    def get_links(self, base_url: str, document: DocumentModel) -> List[Link]:
        return self.extractor.extract(base_url, document)

    async def check_links(self, links: Sequence[Link], context: PageContext) -> Dict[Link, LinkCheckResult]:
        async with LinkValidator(self.config, session=self.session) as validator:
            return await validator.validate(links, cancel_event=context.cancel_event)

    async def run(self, context: PageContext, document: DocumentModel) -> Sequence[MarkUsage]:
        links = self.get_links(context.url, document)
        if not links:
            return []

        results = await self.check_links(links, context)
        usages = self.marks_for(results)

        logger.info(
            "Link metric finished",
            url=context.url,
            links=len(links),
            marks={usage.machine_name: usage.count for usage in usages},
        )
        return usages

    def marks_for(self, results: Mapping[Link, LinkCheckResult]) -> List[MarkUsage]:
        """Turn link check results into one usage per mark, in mark declaration order."""
        details: Dict[str, List[str]] = {machine_name: [] for machine_name in self.marks}

        for link, result in results.items():
            machine_name = STATUS_MARKS.get(result.status)
            if machine_name is None:
                continue
            if machine_name == REDIRECTED_LINK and not self.config.report_redirects:
                continue
            details[machine_name].append(self._describe(link, result))

        return [
            MarkUsage(machine_name=machine_name, count=len(found), details=tuple(found))
            for machine_name, found in details.items()
            if found
        ]

    @staticmethod
    def _describe(link: Link, result: LinkCheckResult) -> str:
        if result.status is LinkStatus.REDIRECTED:
            return f"{link.url} -> {result.final_url}"
        if result.status_code is not None:
            return f"{link.url} ({result.status_code})"
        return f"{link.url} ({result.error or result.status.value})"
