"""
Process-wide catalog of mark definitions.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, Mapping, Optional

import structlog

from .protocols import Mark

logger = structlog.get_logger(__name__)


class MarkCatalog:
    """
    Create-if-absent registry of Marks keyed by machine name.

    Entries are immutable once created. Writers swap in a new mapping under a
    lock, so concurrent readers always see a complete snapshot.
    """

    def __init__(self) -> None:
        self._marks: Mapping[str, Mark] = MappingProxyType({})
        self._lock = threading.Lock()

    def get_mark(self, machine_name: str, *, name: Optional[str] = None, description: str = "") -> Mark:
        """Return the catalog entry for a machine name, creating it if needed."""
        mark = self._marks.get(machine_name)
        if mark is not None:
            return mark

        with self._lock:
            mark = self._marks.get(machine_name)
            if mark is None:
                mark = Mark(machine_name=machine_name, name=name or machine_name, description=description)
                updated: Dict[str, Mark] = dict(self._marks)
                updated[machine_name] = mark
                self._marks = MappingProxyType(updated)
                logger.debug("Mark created", machine_name=machine_name, name=mark.name)
        return mark

    def get(self, machine_name: str) -> Optional[Mark]:
        return self._marks.get(machine_name)

    def snapshot(self) -> Mapping[str, Mark]:
        """Return the current, read-only catalog mapping."""
        return self._marks

    def __contains__(self, machine_name: object) -> bool:
        return machine_name in self._marks

    def __len__(self) -> int:
        return len(self._marks)
