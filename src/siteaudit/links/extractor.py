"""
Candidate link extraction from a parsed page.
"""

from __future__ import annotations

from typing import Dict, List
from urllib.parse import urljoin, urlparse

import structlog

from ..document import DocumentModel
from .models import Link

logger = structlog.get_logger(__name__)

WEB_SCHEMES = frozenset({"http", "https"})

ANCHOR_XPATH = "//a[@href] | //area[@href]"


def strip_fragment(url: str) -> str:
    """Remove the '#...' suffix of a URL, leaving any query string intact.

    >>> strip_fragment("http://www.test.com/?test=test#test")
    'http://www.test.com/?test=test'
    """
    return url.split("#", 1)[0]


class LinkExtractor:
    """Produces the normalized, deduplicated set of links worth checking."""

    name = "link_extractor"

    def __init__(self, xpath: str = ANCHOR_XPATH) -> None:
        self.xpath = xpath
        self.logger = logger.bind(component="LinkExtractor")

    def _resolution_base(self, base_url: str, document: DocumentModel) -> str:
        base_href = document.base_href()
        if base_href:
            return urljoin(base_url, base_href)
        return base_url

    def extract(self, base_url: str, document: DocumentModel) -> List[Link]:
        """
        Extract candidate links from a document.

        Args:
            base_url: URL the page was fetched from
            document: Parsed page

        Returns:
            Links in order of first occurrence, one per absolute URL
        """
        resolve_against = self._resolution_base(base_url, document)
        links: Dict[str, Link] = {}
        skipped = 0

        for element in document.query(self.xpath):
            href = (element.get("href") or "").strip()

            # Empty and '#...' hrefs point back at this same page
            if not href or href.startswith("#"):
                skipped += 1
                continue

            absolute = strip_fragment(urljoin(resolve_against, href))
            parsed = urlparse(absolute)
            scheme = parsed.scheme.lower()

            if scheme not in WEB_SCHEMES or not parsed.netloc:
                skipped += 1
                continue

            if absolute not in links:
                links[absolute] = Link(url=absolute, href=href, scheme=scheme)

        self.logger.debug("Extracted links", url=base_url, links=len(links), skipped=skipped)
        return list(links.values())
