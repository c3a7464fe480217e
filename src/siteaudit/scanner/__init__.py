"""Page-scan orchestration."""

from .orchestrator import ScanOrchestrator, ScanPass

__all__ = ["ScanOrchestrator", "ScanPass"]
