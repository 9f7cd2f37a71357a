"""Discovered URL record and discovery project models."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .job import utcnow
from .validation_result import ValidationResult


def url_key(url: str) -> str:
    """Dedup key for an already-normalized URL: case and trailing-slash insensitive."""
    return url.strip().lower().rstrip("/")


class DiscoveryStatus:
    """Values used for DiscoveredUrl.status."""

    OK = "OK"  # page fetched
    DISCOVERED = "Discovered"  # seen as a link or sitemap entry, not fetched


class ProjectStatus:
    """Values used for DiscoveryProject.status."""

    CREATED = "Created"
    CRAWLING = "Crawling"
    COMPLETED = "Completed"
    STOPPED = "Stopped"
    FAILED = "Failed"


class DiscoveredUrl(BaseModel):
    """Record for a URL found during a crawl. Identity is the normalized URL."""

    url: str = Field(..., description="Normalized URL")
    title: str = ""
    status: str = DiscoveryStatus.DISCOVERED
    depth: int = Field(0, description="Link-follow distance from the seed URL")
    discovered_from: Optional[str] = Field(None, description="URL or sitemap source")
    discovered_at: datetime = Field(default_factory=utcnow)
    validation_result: Optional[ValidationResult] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return url_key(self.url)


class FrontierEntry(BaseModel):
    """A discovered URL still waiting to be visited; persisted so a stopped crawl can resume."""

    url: str
    depth: int = 0
    discovered_from: Optional[str] = None


class DiscoveryProject(BaseModel):
    """Crawl-scoped context for one seed URL."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    seed_url: str
    crawl_depth: int = Field(ge=0)
    max_pages: int = Field(ge=1)
    url_patterns: list[str] = Field(default_factory=list)
    status: str = ProjectStatus.CREATED
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)

    def set_status(self, status: str) -> None:
        self.status = status
        self.last_modified = utcnow()
