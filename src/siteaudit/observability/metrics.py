"""
Defines Prometheus metrics for the scan pipeline and link checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from siteaudit.config.config import MonitoringConfig

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Importing this module more than once (test reloads) must not raise
# duplicate registration errors.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    """Create the siteaudit collectors."""
    return {
        "scan_passes_total": Counter(
            "siteaudit_scan_passes_total",
            "Page-scan passes by terminal state",
            ["state"],
        ),
        "scan_pass_duration_seconds": Histogram(
            "siteaudit_scan_pass_duration_seconds",
            "Wall-clock time of a page-scan pass",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
        ),
        "plugin_failures_total": Counter(
            "siteaudit_plugin_failures_total",
            "Metric plugin faults by plugin",
            ["plugin"],
        ),
        "link_checks_total": Counter(
            "siteaudit_link_checks_total",
            "Link checks by classification",
            ["status"],
        ),
        "link_check_latency_seconds": Histogram(
            "siteaudit_link_check_latency_seconds",
            "Time taken to classify one link including redirects",
            buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
        ),
        "link_checks_in_flight": Gauge(
            "siteaudit_link_checks_in_flight",
            "Number of link probes currently in flight",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def start_metrics_server(config: MonitoringConfig) -> bool:
    """Start the Prometheus exporter if a port is configured."""
    if not config.prometheus_port:
        return False
    start_http_server(config.prometheus_port)
    return True
