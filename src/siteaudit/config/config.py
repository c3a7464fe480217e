"""
Configuration management for SiteAudit using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "SiteAuditBot/1.0 (+https://github.com/siteaudit/siteaudit)"

# --- Nested Configuration Models ---


class LinkCheckConfig(BaseModel):
    """Configuration for link reachability checks."""

    model_config = ConfigDict(validate_assignment=True)

    max_workers: int = Field(default=5, ge=1, description="Maximum concurrent link probes per page.")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds.")
    max_redirects: int = Field(default=5, ge=0, description="Maximum redirect hops followed per link.")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent string for link probes.")
    head_fallback_statuses: List[int] = Field(
        default_factory=lambda: [405, 501],
        description="HEAD response codes that trigger a GET retry of the same hop.",
    )
    report_redirects: bool = Field(default=True, description="Whether redirected links produce a mark.")

    @field_validator("head_fallback_statuses")
    @classmethod
    def validate_statuses(cls, v: List[int]) -> List[int]:
        """Ensure fallback statuses are HTTP error codes."""
        for status in v:
            if not 400 <= status <= 599:
                raise ValueError(f"head_fallback_statuses must be 4xx/5xx codes, got {status}")
        return v


class ScanConfig(BaseModel):
    """Configuration for page-scan passes."""

    model_config = ConfigDict(validate_assignment=True)

    max_concurrent_pages: int = Field(default=4, ge=1, description="Page-scan passes run in parallel.")
    enabled_plugins: List[str] = Field(
        default_factory=lambda: ["metric_links", "metric_page_title"],
        description="Plugins registered by default, in run order.",
    )


class FetcherConfig(BaseModel):
    """Configuration for downloading the pages under audit."""

    model_config = ConfigDict(validate_assignment=True)

    timeout: float = Field(default=30.0, gt=0, description="HTTP request timeout in seconds.")
    max_retries: int = Field(default=3, ge=0, description="Retry attempts for transient fetch failures.")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent string for page fetches.")


class StorageConfig(BaseModel):
    """Configuration for the JSON result store."""

    model_config = ConfigDict(validate_assignment=True)

    output_dir: Path = Field(default=Path("./data/scans"), description="Directory for page scan results.")


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    model_config = ConfigDict(validate_assignment=True)

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: int | None = Field(default=None, description="Port for Prometheus exporter. None to disable.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "SiteAudit"
    links: LinkCheckConfig = Field(default_factory=LinkCheckConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_prefix="SITEAUDIT_", env_nested_delimiter="__", case_sensitive=False, validate_assignment=True
    )

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for name in ("siteaudit.yaml", "siteaudit.yml"):
        path = current_dir / name
        if path.exists():
            return path
    return None

