"""
Tests for the plugin registry: registration order and lifecycle bookkeeping.
"""

import pytest

from siteaudit.config import Config
from siteaudit.plugins import AVAILABLE_PLUGINS, LinkMetric, PageTitleMetric, PluginRegistry, build_registry
from siteaudit.protocols import MarkUsage, MetricPlugin


class LifecyclePlugin:
    """Plugin with install/update/uninstall hooks."""

    description = "Hooks"
    marks = {"hooked": ("Hooked", "")}

    def __init__(self, name="hooked", version=1, accept=True):
        self.name = name
        self.version = version
        self.accept = accept
        self.hook_calls = []

    async def run(self, context, document):
        return [MarkUsage(machine_name="hooked", count=1)]

    def on_install(self):
        self.hook_calls.append(("install",))
        return self.accept

    def on_update(self, previous_version):
        self.hook_calls.append(("update", previous_version))
        return self.accept

    def on_uninstall(self):
        self.hook_calls.append(("uninstall",))
        return self.accept


@pytest.mark.unit
class TestRegistration:
    """Active plugin set."""

    def test_plugins_kept_in_registration_order(self, registry, make_plugin):
        for name in ("c", "a", "b"):
            registry.register(make_plugin(name))
        assert [plugin.name for plugin in registry.get_active_plugins()] == ["c", "a", "b"]

    def test_register_seeds_catalog(self, registry, catalog):
        registry.register(LinkMetric())
        assert "broken-link" in catalog
        assert catalog.get("broken-link").name == "Broken link"
        assert "redirected-link" in catalog

    def test_duplicate_name_rejected(self, registry, make_plugin):
        registry.register(make_plugin("dup"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(make_plugin("dup"))

    def test_non_plugin_rejected(self, registry):
        with pytest.raises(TypeError):
            registry.register(object())

    def test_snapshot_unaffected_by_later_changes(self, registry, make_plugin):
        """A pass that took a snapshot keeps its plugin set."""
        registry.register(make_plugin("first"))
        snapshot = registry.get_active_plugins()
        registry.register(make_plugin("second"))
        registry.unregister("first")

        assert [plugin.name for plugin in snapshot] == ["first"]
        assert [plugin.name for plugin in registry.get_active_plugins()] == ["second"]

    def test_unregister_unknown(self, registry):
        with pytest.raises(KeyError):
            registry.unregister("nope")

    def test_get(self, registry, make_plugin):
        plugin = make_plugin("x")
        registry.register(plugin)
        assert registry.get("x") is plugin
        assert registry.get("y") is None

    def test_builtin_plugins_satisfy_protocol(self):
        assert isinstance(LinkMetric(), MetricPlugin)
        assert isinstance(PageTitleMetric(), MetricPlugin)


@pytest.mark.unit
class TestLifecycle:
    """Install/update/uninstall bookkeeping."""

    def test_install_then_current(self, registry):
        plugin = LifecyclePlugin(version=2)
        assert registry.get_update_method(plugin) == "install"
        assert registry.install(plugin) is True
        assert registry.get_installed_version(plugin) == 2
        assert registry.get_update_method(plugin) is None
        assert registry.install(plugin) is False
        assert plugin.hook_calls == [("install",)]

    def test_update_passes_previous_version(self):
        plugin = LifecyclePlugin(version=3)
        registry = PluginRegistry(installed_versions={"hooked": 1})

        assert registry.get_update_method(plugin) == "update"
        assert registry.perform_update(plugin) is True
        assert plugin.hook_calls == [("update", 1)]
        assert registry.get_installed_versions()["hooked"] == 3

    def test_declining_hook_records_nothing(self, registry):
        plugin = LifecyclePlugin(accept=False)
        assert registry.install(plugin) is False
        assert not registry.is_installed(plugin)

    def test_uninstall(self):
        plugin = LifecyclePlugin()
        registry = PluginRegistry(installed_versions={"hooked": 1})
        assert registry.uninstall(plugin) is True
        assert not registry.is_installed(plugin)

    def test_plugins_without_hooks_install(self, registry, make_plugin):
        plugin = make_plugin("plain")
        assert registry.install(plugin) is True
        assert registry.get_installed_version(plugin) == 1

    def test_perform_updates_covers_active_plugins(self, make_plugin):
        current = LifecyclePlugin(name="current", version=1)
        stale = LifecyclePlugin(name="stale", version=2)
        registry = PluginRegistry([current, stale, make_plugin("fresh")], installed_versions={"current": 1, "stale": 1})

        assert registry.perform_updates() == {"current": False, "stale": True, "fresh": True}


@pytest.mark.unit
class TestBuildRegistry:
    """Registry construction from configuration."""

    def test_default_plugins_in_order(self):
        registry = build_registry(Config())
        assert [plugin.name for plugin in registry.get_active_plugins()] == ["metric_links", "metric_page_title"]

    def test_configured_order_respected(self):
        config = Config()
        config.scan.enabled_plugins = ["metric_page_title", "metric_links"]
        assert [plugin.name for plugin in build_registry(config).get_active_plugins()] == [
            "metric_page_title",
            "metric_links",
        ]

    def test_unknown_plugin(self):
        config = Config()
        config.scan.enabled_plugins = ["metric_links", "metric_spelling"]
        with pytest.raises(ValueError, match="metric_spelling"):
            build_registry(config)

    def test_link_metric_receives_link_config(self):
        config = Config()
        config.links.max_workers = 9
        registry = build_registry(config)
        assert registry.get("metric_links").config.max_workers == 9
        assert set(AVAILABLE_PLUGINS) == {"metric_links", "metric_page_title"}
