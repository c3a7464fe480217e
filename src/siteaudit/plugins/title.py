"""
Page title metric.
"""

from __future__ import annotations

from typing import Mapping, Sequence, Tuple

from ..document import DocumentModel
from ..protocols import MarkUsage, PageContext

MISSING_PAGE_TITLE = "missing-page-title"


class PageTitleMetric:
    """Marks pages without a usable <title>."""

    name = "metric_page_title"
    version = 1
    description = "Checks that every page declares a non-empty title."
    marks: Mapping[str, Tuple[str, str]] = {
        MISSING_PAGE_TITLE: ("Missing page title", "The page has no <title> element or it is empty."),
    }

    async def run(self, context: PageContext, document: DocumentModel) -> Sequence[MarkUsage]:
        if document.title():
            return []
        return [MarkUsage(machine_name=MISSING_PAGE_TITLE, count=1, details=(context.url,))]
