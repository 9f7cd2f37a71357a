"""Control plane for the catalog processing pipeline."""

from .orchestrator import CatalogOrchestrator
from .registry import Execution, JobRegistry

__all__ = ["CatalogOrchestrator", "Execution", "JobRegistry"]
