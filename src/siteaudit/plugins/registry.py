"""
Registry of active metric plugins and their installed versions.

Plugins are registered explicitly, in run order. Install, update and
uninstall bookkeeping is a name -> version mapping owned by the registry;
hooks on the plugin (``on_install``, ``on_update``, ``on_uninstall``) are
optional and must return a truthy value for the change to be recorded.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Literal, Mapping, Optional, Tuple

import structlog

from ..catalog import MarkCatalog
from ..protocols import MetricPlugin

logger = structlog.get_logger(__name__)

UpdateMethod = Literal["install", "update"]


class PluginRegistry:
    """Holds the ordered set of active plugins and their lifecycle state."""

    def __init__(
        self,
        plugins: Iterable[MetricPlugin] = (),
        *,
        catalog: Optional[MarkCatalog] = None,
        installed_versions: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.catalog = catalog or MarkCatalog()
        self._plugins: Tuple[MetricPlugin, ...] = ()
        self._versions: Mapping[str, int] = MappingProxyType(dict(installed_versions or {}))
        self._lock = threading.RLock()
        self.logger = logger.bind(component="PluginRegistry")

        for plugin in plugins:
            self.register(plugin)

    # ------------------------------------------------------------------
    # Active plugins
    # ------------------------------------------------------------------

    def register(self, plugin: MetricPlugin) -> None:
        """Append a plugin to the run order and seed its marks in the catalog."""
        if not isinstance(plugin, MetricPlugin):
            raise TypeError(f"{plugin!r} does not implement the MetricPlugin protocol")

        with self._lock:
            if any(existing.name == plugin.name for existing in self._plugins):
                raise ValueError(f"Plugin '{plugin.name}' is already registered")
            for machine_name, (name, description) in plugin.marks.items():
                self.catalog.get_mark(machine_name, name=name, description=description)
            self._plugins = self._plugins + (plugin,)

        self.logger.info("Plugin registered", plugin=plugin.name, version=plugin.version)

    def unregister(self, name: str) -> None:
        with self._lock:
            remaining = tuple(plugin for plugin in self._plugins if plugin.name != name)
            if len(remaining) == len(self._plugins):
                raise KeyError(name)
            self._plugins = remaining

    def get_active_plugins(self) -> Tuple[MetricPlugin, ...]:
        """Return the current plugin snapshot in registration order."""
        return self._plugins

    def get(self, name: str) -> Optional[MetricPlugin]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    # ------------------------------------------------------------------
    # Lifecycle bookkeeping
    # ------------------------------------------------------------------

    def get_installed_versions(self) -> Mapping[str, int]:
        return self._versions

    def is_installed(self, plugin: MetricPlugin) -> bool:
        return plugin.name in self._versions

    def get_installed_version(self, plugin: MetricPlugin) -> Optional[int]:
        return self._versions.get(plugin.name)

    def _set_version(self, name: str, version: Optional[int]) -> None:
        updated: Dict[str, int] = dict(self._versions)
        if version is None:
            updated.pop(name, None)
        else:
            updated[name] = version
        self._versions = MappingProxyType(updated)

    @staticmethod
    def _call_hook(plugin: MetricPlugin, hook: str, *args: int) -> bool:
        method: Optional[Callable[..., object]] = getattr(plugin, hook, None)
        if method is None or not callable(method):
            return True
        return bool(method(*args))

    def get_update_method(self, plugin: MetricPlugin) -> Optional[UpdateMethod]:
        """Name the lifecycle action a plugin needs, or None if it is current."""
        installed = self.get_installed_version(plugin)
        if installed is None:
            return "install"
        if installed < plugin.version:
            return "update"
        return None

    def install(self, plugin: MetricPlugin) -> bool:
        with self._lock:
            if self.is_installed(plugin):
                return False
            if not self._call_hook(plugin, "on_install"):
                self.logger.warning("Plugin install hook declined", plugin=plugin.name)
                return False
            self._set_version(plugin.name, plugin.version)
        self.logger.info("Plugin installed", plugin=plugin.name, version=plugin.version)
        return True

    def update(self, plugin: MetricPlugin) -> bool:
        with self._lock:
            installed = self.get_installed_version(plugin)
            if installed is None or installed >= plugin.version:
                return False
            if not self._call_hook(plugin, "on_update", installed):
                self.logger.warning("Plugin update hook declined", plugin=plugin.name, installed=installed)
                return False
            self._set_version(plugin.name, plugin.version)
        self.logger.info("Plugin updated", plugin=plugin.name, previous=installed, version=plugin.version)
        return True

    def uninstall(self, plugin: MetricPlugin) -> bool:
        with self._lock:
            if not self._call_hook(plugin, "on_uninstall"):
                return False
            self._set_version(plugin.name, None)
        self.logger.info("Plugin uninstalled", plugin=plugin.name)
        return True

    def perform_update(self, plugin: MetricPlugin) -> bool:
        """Install or update a plugin as needed; False when nothing was done."""
        method = self.get_update_method(plugin)
        if method is None:
            return False
        return self.install(plugin) if method == "install" else self.update(plugin)

    def perform_updates(self) -> Dict[str, bool]:
        """Run perform_update for every active plugin."""
        return {plugin.name: self.perform_update(plugin) for plugin in self.get_active_plugins()}
