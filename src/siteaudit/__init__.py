"""
SiteAudit - website auditing through pluggable page metrics.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .catalog import MarkCatalog
from .config import Config
from .document import DocumentModel
from .plugins import PluginRegistry, build_registry
from .scanner import ScanOrchestrator

__all__ = ["__version__", "Config", "DocumentModel", "MarkCatalog", "PluginRegistry", "ScanOrchestrator", "build_registry"]
