"""
JSON file result store.

Writes one JSON document per page scan under ``<output_dir>/<scan_id>/``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import structlog

from ..config.config import StorageConfig
from ..exceptions import PersistenceError
from ..protocols import PageScanResult
from ..utils import atomic_write_json, slugify, slugify_url

logger = structlog.get_logger(__name__)


class JsonResultStore:
    """Persists PageScanResults as JSON files."""

    def __init__(self, config: Optional[StorageConfig] = None, *, output_dir: Optional[Path] = None) -> None:
        self.config = config or StorageConfig()
        self.output_dir = Path(output_dir or self.config.output_dir)
        self.logger = logger.bind(component="JsonResultStore")

    def path_for(self, result: PageScanResult) -> Path:
        scan_dir = slugify(result.scan_id or "unscoped") or "unscoped"
        return self.output_dir / scan_dir / f"{slugify_url(result.url)}.json"

    async def save(self, result: PageScanResult) -> None:
        """
        Write a result to disk.

        Raises:
            PersistenceError: If the result cannot be serialized or written
        """
        path = self.path_for(result)
        try:
            await asyncio.to_thread(atomic_write_json, path, result.to_dict())
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not store scan result for {result.url}: {e}") from e

        self.logger.info("Scan result stored", url=result.url, path=str(path), marks=len(result.usages))
