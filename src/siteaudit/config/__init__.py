"""Configuration models and loaders."""

from .config import (
    Config,
    FetcherConfig,
    LinkCheckConfig,
    MonitoringConfig,
    ScanConfig,
    StorageConfig,
    find_config_file,
)

__all__ = [
    "Config",
    "FetcherConfig",
    "LinkCheckConfig",
    "MonitoringConfig",
    "ScanConfig",
    "StorageConfig",
    "find_config_file",
]
