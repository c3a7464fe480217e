"""
Shared fixtures for the SiteAudit test suite.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Sequence

import pytest

from siteaudit.catalog import MarkCatalog
from siteaudit.config import Config, LinkCheckConfig
from siteaudit.document import DocumentModel
from siteaudit.plugins import PluginRegistry
from siteaudit.protocols import MarkUsage, PageContext, PageScanResult

# ============================================================================
# Sample Pages
# ============================================================================

EXAMPLE_PAGE = b"""<!DOCTYPE html>
<html>
<head>
    <title>Example page</title>
</head>
<body>
    <ul>
        <li><a href="http://www.google.com/">Google</a></li>
        <li><a href="http://www.google.com/#search">Google again</a></li>
        <li><a href="http://unlcms.unl.edu/university-communications/sitemaster/example-404">404</a></li>
        <li><a href="http://unlcms.unl.edu/university-communications/sitemaster/example-redirect-301">301</a></li>
        <li><a href="javascript:void(0)">Script</a></li>
        <li><a href="tel:555-555-5555">Phone</a></li>
        <li><a href="mailto:test@test.com">Mail</a></li>
        <li><a href="#invalid">Same page</a></li>
        <li><a href="">Empty</a></li>
    </ul>
    <p>Unclosed paragraph
    <div><span>Bad nesting</div></span>
</body>
</html>
"""

EXAMPLE_URL = "http://www.test.com/"

GOOGLE = "http://www.google.com/"
EXAMPLE_404 = "http://unlcms.unl.edu/university-communications/sitemaster/example-404"
EXAMPLE_301 = "http://unlcms.unl.edu/university-communications/sitemaster/example-redirect-301"


@pytest.fixture
def example_html() -> bytes:
    return EXAMPLE_PAGE


@pytest.fixture
def example_document() -> DocumentModel:
    return DocumentModel.parse(EXAMPLE_PAGE)


@pytest.fixture
def page_context() -> PageContext:
    return PageContext(url=EXAMPLE_URL, scan_id="test-scan")


# ============================================================================
# Configuration and registry
# ============================================================================


@pytest.fixture
def link_config() -> LinkCheckConfig:
    """Link check settings with short timeouts for tests."""
    return LinkCheckConfig(max_workers=2, timeout=1.0, max_redirects=3)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    config = Config()
    config.links.timeout = 1.0
    config.storage.output_dir = tmp_path / "scans"
    return config


@pytest.fixture
def catalog() -> MarkCatalog:
    return MarkCatalog()


@pytest.fixture
def registry(catalog: MarkCatalog) -> PluginRegistry:
    return PluginRegistry(catalog=catalog)


# ============================================================================
# Test doubles
# ============================================================================


class StaticPlugin:
    """Plugin that returns fixed usages, optionally after a delay or a fault."""

    version = 1
    description = "Returns canned mark usages."

    def __init__(self, name: str, usages: Sequence[MarkUsage] = (), *, error: Exception | None = None, delay: float = 0):
        self.name = name
        self.usages = list(usages)
        self.error = error
        self.delay = delay
        self.marks = {usage.machine_name: (usage.machine_name.title(), "") for usage in self.usages}
        self.calls: List[PageContext] = []

    async def run(self, context: PageContext, document: DocumentModel) -> Sequence[MarkUsage]:
        self.calls.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.usages


class RecordingStore:
    """In-memory result store."""

    def __init__(self, error: Exception | None = None) -> None:
        self.saved: List[PageScanResult] = []
        self.error = error

    async def save(self, result: PageScanResult) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append(result)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def make_plugin():
    """Factory for canned plugins."""
    return StaticPlugin


@pytest.fixture
def make_store():
    """Factory for in-memory stores, optionally failing on save."""
    return RecordingStore
