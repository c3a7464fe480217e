"""
Link extraction and validation.

- LinkExtractor turns a parsed page into the set of http(s) links worth checking
- LinkValidator probes those links concurrently and classifies each outcome
"""

from .extractor import LinkExtractor, strip_fragment
from .models import Link, LinkCheckResult, LinkStatus
from .validator import LinkValidator

__all__ = [
    "Link",
    "LinkCheckResult",
    "LinkExtractor",
    "LinkStatus",
    "LinkValidator",
    "strip_fragment",
]
