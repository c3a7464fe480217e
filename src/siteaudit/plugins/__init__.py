"""
Metric plugins and their registry.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from ..catalog import MarkCatalog
from ..config.config import Config
from ..protocols import MetricPlugin
from .links import LinkMetric
from .registry import PluginRegistry
from .title import PageTitleMetric

__all__ = ["LinkMetric", "PageTitleMetric", "PluginRegistry", "AVAILABLE_PLUGINS", "build_registry"]

AVAILABLE_PLUGINS: Dict[str, Callable[[Config], MetricPlugin]] = {
    LinkMetric.name: lambda config: LinkMetric(config.links),
    PageTitleMetric.name: lambda config: PageTitleMetric(),
}


def build_registry(config: Config, catalog: Optional[MarkCatalog] = None) -> PluginRegistry:
    """Create a registry holding the configured plugins in configured order."""
    unknown: List[str] = [name for name in config.scan.enabled_plugins if name not in AVAILABLE_PLUGINS]
    if unknown:
        raise ValueError(f"Unknown plugins {unknown}. Available plugins: {list(AVAILABLE_PLUGINS)}")

    return PluginRegistry(
        (AVAILABLE_PLUGINS[name](config) for name in config.scan.enabled_plugins),
        catalog=catalog,
    )
