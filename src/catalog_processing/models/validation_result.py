"""URL validation result models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .job import utcnow


# valid=True is only ever reported for status codes in this range
SUCCESS_STATUS_RANGE = range(200, 400)

UNKNOWN_CONTENT_TYPE = "unknown/unknown"


class ValidationStatus(str, Enum):
    """Status class of one validation attempt."""

    VALID = "Valid"
    WARNING = "Warning"  # 3xx left unresolved
    INVALID = "Invalid"  # malformed URL, unsupported scheme, 4xx/5xx
    ERROR = "ERROR"  # transport failure or timeout
    CANCELLED = "Cancelled"


class AssetType(str, Enum):
    """Coarse content classification."""

    ARTICLE = "article"
    WEBPAGE = "webpage"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    DOCUMENT = "document"
    DATASET = "dataset"
    OTHER = "other"


class ValidationResult(BaseModel):
    """Terminal outcome of validating a single URL."""

    url: str
    status: ValidationStatus
    status_code: Optional[int] = None
    message: str = ""
    content_type: str = UNKNOWN_CONTENT_TYPE
    valid: bool = False

    @model_validator(mode="after")
    def _valid_implies_success_code(self) -> "ValidationResult":
        if self.valid and (self.status_code is None or self.status_code not in SUCCESS_STATUS_RANGE):
            raise ValueError(
                f"valid result for {self.url} must carry a status code in "
                f"{SUCCESS_STATUS_RANGE.start}-{SUCCESS_STATUS_RANGE.stop - 1}, got {self.status_code}"
            )
        return self


class EnhancedValidationResult(ValidationResult):
    """Validation result enriched with asset classification."""

    url_id: Optional[str] = None
    display_name: str = ""
    asset_type: AssetType = AssetType.OTHER
    validated_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, str] = Field(default_factory=dict)
