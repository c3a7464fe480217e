"""
Core contracts and dataclasses for SiteAudit.

This module defines the plugin capability contract, the collaborator
boundaries (fetching, persistence) and the data structures that flow through
a page-scan pass:

    raw bytes -> DocumentModel -> MetricPlugin.run() -> MarkUsage
              -> PageScanResult -> ResultStore
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .exceptions import PluginError

if TYPE_CHECKING:
    from .document import DocumentModel


# ============================================================================
# Enums
# ============================================================================


class ScanState(Enum):
    """States of a single page-scan pass."""

    FETCHED = "fetched"
    PARSED = "parsed"
    PLUGINS_RUNNING = "plugins_running"
    AGGREGATED = "aggregated"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.DELIVERED, ScanState.FAILED)


# ============================================================================
# Core Dataclasses
# ============================================================================


@dataclass(frozen=True)
class PageContext:
    """What a plugin knows about the page besides its markup."""

    url: str
    depth: int = 0
    scan_id: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Mark:
    """A catalog entry naming a category of audit finding."""

    machine_name: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class MarkUsage:
    """One page-scan's occurrence count of a mark."""

    machine_name: str
    count: int
    details: Tuple[str, ...] = ()
    mark: Optional[Mark] = None

    def __post_init__(self) -> None:
        """Validate the usage."""
        if self.count < 0:
            raise ValueError("MarkUsage count must be >= 0")

    @property
    def name(self) -> str:
        return self.mark.name if self.mark else self.machine_name


@dataclass
class PageScanResult:
    """Aggregate of all mark usages produced for one page in one pass."""

    url: str
    scan_id: Optional[str] = None
    title: Optional[str] = None
    usages: List[MarkUsage] = field(default_factory=list)
    plugin_errors: List[PluginError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def count_for(self, machine_name: str) -> int:
        """Total count recorded for a mark, 0 if absent."""
        return sum(usage.count for usage in self.usages if usage.machine_name == machine_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "scan_id": self.scan_id,
            "title": self.title,
            "marks": [
                {
                    "machine_name": usage.machine_name,
                    "name": usage.name,
                    "count": usage.count,
                    "details": list(usage.details),
                }
                for usage in self.usages
            ],
            "plugin_errors": [
                {"plugin": error.plugin_name, "url": error.url, "error": str(error)} for error in self.plugin_errors
            ],
            "warnings": list(self.warnings),
        }


@dataclass
class ScanOutcome:
    """Terminal state of a page-scan pass."""

    url: str
    state: ScanState
    result: Optional[PageScanResult] = None
    error: Optional[BaseException] = None

    @property
    def delivered(self) -> bool:
        return self.state is ScanState.DELIVERED


# ============================================================================
# Capability Protocols
# ============================================================================


@runtime_checkable
class MetricPlugin(Protocol):
    """Pluggable analyzer run against one parsed page."""

    name: str
    version: int
    description: str
    marks: Mapping[str, Tuple[str, str]]

    async def run(self, context: PageContext, document: "DocumentModel") -> Sequence[MarkUsage]:
        """Analyse a page.

        Args:
            context: URL and depth of the page under audit
            document: Parsed page markup

        Returns:
            Mark usages found on the page; empty when there are no findings
        """
        ...


class PageFetcher(Protocol):
    """Supplies the raw markup of the page under audit."""

    async def fetch(self, url: str) -> bytes:
        """Download a page, raising FetchError on failure."""
        ...


class ResultStore(Protocol):
    """Accepts finished page scan results."""

    async def save(self, result: PageScanResult) -> None:
        """Persist a result, raising on failure."""
        ...
