"""Data models for catalog processing system."""

from .job import (
    Phase,
    PhaseState,
    PhaseStatus,
    JobConfiguration,
    JobStatistics,
    ProcessingJob,
)
from .recon import ReconnaissanceHints
from .url_record import (
    DiscoveredUrl,
    DiscoveryProject,
    DiscoveryStatus,
    FrontierEntry,
    ProjectStatus,
    url_key,
)
from .validation_result import (
    AssetType,
    EnhancedValidationResult,
    SUCCESS_STATUS_RANGE,
    ValidationResult,
    ValidationStatus,
)
from .processing_result import CatalogProcessingResult, ProcessedUrl
from .page_package import ExtractedPage
from .classification_result import ALLOWED_CATEGORIES, EnhancedAsset

__all__ = [
    "Phase",
    "PhaseState",
    "PhaseStatus",
    "JobConfiguration",
    "JobStatistics",
    "ProcessingJob",
    "ReconnaissanceHints",
    "DiscoveredUrl",
    "DiscoveryProject",
    "DiscoveryStatus",
    "FrontierEntry",
    "url_key",
    "ProjectStatus",
    "AssetType",
    "EnhancedValidationResult",
    "SUCCESS_STATUS_RANGE",
    "ValidationResult",
    "ValidationStatus",
    "CatalogProcessingResult",
    "ProcessedUrl",
    "ExtractedPage",
    "ALLOWED_CATEGORIES",
    "EnhancedAsset",
]
