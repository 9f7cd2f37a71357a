"""Enhancement classification of cataloged assets."""

from datetime import datetime

from pydantic import BaseModel, Field

from .job import utcnow
from .validation_result import AssetType


ALLOWED_CATEGORIES = frozenset({
    "NEWS",
    "RESEARCH",
    "REFERENCE",
    "MEDIA",
    "DATASET",
    "PRODUCT",
    "NAVIGATION",
    "OTHER",
})


class EnhancedAsset(BaseModel):
    """Catalog entry for one asset after the enhancement phase."""

    url: str
    asset_type: AssetType = AssetType.OTHER
    category: str = "OTHER"
    title: str = ""
    summary: str = ""
    keywords: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: str = Field(default="heuristic", pattern="^(llm|heuristic)$")
    needs_review: bool = False
    model_version: str = ""
    processed_at: datetime = Field(default_factory=utcnow)
