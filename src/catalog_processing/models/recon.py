"""Crawl-tuning hints returned by the reconnaissance advisor."""

from typing import Optional

from pydantic import BaseModel, Field


class ReconnaissanceHints(BaseModel):
    """Advisory output. Every field may be absent; callers fall back to their own limits."""

    estimated_url_count: Optional[int] = Field(default=None, ge=0)
    recommended_crawl_depth: Optional[int] = Field(default=None, ge=0)
    url_patterns: list[str] = Field(default_factory=list)
    site_structure: Optional[str] = None
    has_sitemap: Optional[bool] = None
    rationale: str = ""

    def is_empty(self) -> bool:
        return (
            self.estimated_url_count is None
            and self.recommended_crawl_depth is None
            and not self.url_patterns
        )
