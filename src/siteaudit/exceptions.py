"""
Exception hierarchy for SiteAudit.

Link-check failures are not exceptions; they are LinkStatus values carried by
LinkCheckResult.
"""

from __future__ import annotations

from typing import Optional


class SiteAuditError(Exception):
    """Base class for all SiteAudit errors."""


class ParseError(SiteAuditError):
    """Raw page bytes could not be turned into any document tree."""


class QueryError(SiteAuditError):
    """An XPath expression could not be evaluated."""


class PluginError(SiteAuditError):
    """A metric plugin faulted while analysing a page."""

    def __init__(self, plugin_name: str, url: str, cause: Optional[BaseException] = None) -> None:
        self.plugin_name = plugin_name
        self.url = url
        self.cause = cause
        detail = f": {type(cause).__name__}: {cause}" if cause is not None else ""
        super().__init__(f"Plugin '{plugin_name}' failed on {url}{detail}")


class FetchError(SiteAuditError):
    """The page under audit could not be downloaded."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None) -> None:
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"Failed to fetch {url}: {reason}")


class PersistenceError(SiteAuditError):
    """A scan result could not be stored."""


class ScanCancelledError(SiteAuditError):
    """A page-scan pass was aborted by its cancellation signal."""
