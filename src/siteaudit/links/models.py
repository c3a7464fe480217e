"""
Data models for link extraction and validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class LinkStatus(Enum):
    """Classification of one link check."""

    REACHABLE = "reachable"
    REDIRECTED = "redirected"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    REDIRECT_CHAIN_EXCEEDED = "redirect_chain_exceeded"
    TIMEOUT = "timeout"
    CONNECTION_FAILURE = "connection_failure"

    @property
    def is_broken(self) -> bool:
        return self in _BROKEN_STATUSES


_BROKEN_STATUSES = frozenset(
    {
        LinkStatus.CLIENT_ERROR,
        LinkStatus.SERVER_ERROR,
        LinkStatus.REDIRECT_CHAIN_EXCEEDED,
        LinkStatus.TIMEOUT,
        LinkStatus.CONNECTION_FAILURE,
    }
)


@dataclass(frozen=True)
class Link:
    """A candidate http(s) URL found on a page.

    Links compare and hash by their resolved absolute URL only, so two hrefs
    that resolve to the same target are the same Link.
    """

    url: str
    href: str = field(default="", compare=False)
    scheme: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class LinkCheckResult:
    """Outcome of probing one link."""

    url: str
    status: LinkStatus
    final_url: str
    status_code: Optional[int] = None
    redirects: int = 0
    method: str = "HEAD"
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def is_broken(self) -> bool:
        return self.status.is_broken
