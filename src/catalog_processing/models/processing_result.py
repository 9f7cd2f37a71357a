"""Phase-scoped processing result."""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .job import utcnow


ProcessedUrlStatus = Literal["success", "warning", "error", "pending"]


class ProcessedUrl(BaseModel):
    """Outcome for one URL within a phase."""

    url: str
    status: ProcessedUrlStatus
    message: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class CatalogProcessingResult(BaseModel):
    """
    Result of one (job, phase) execution.
    Explicit counts take precedence over recomputation from processed_urls;
    None means the count was never set, so an explicit 0 is reported as 0.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str
    phase: str
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    completed: bool = False
    successful: bool = False
    cancelled: bool = False
    error_message: Optional[str] = None
    processed_urls: list[ProcessedUrl] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    explicit_success_count: Optional[int] = Field(default=None, ge=0)
    explicit_error_count: Optional[int] = Field(default=None, ge=0)

    def _count(self, status: str) -> int:
        return sum(1 for p in self.processed_urls if p.status == status)

    @property
    def total_processed_count(self) -> int:
        return len(self.processed_urls)

    @property
    def success_count(self) -> int:
        if self.explicit_success_count is not None:
            return self.explicit_success_count
        return self._count("success")

    @property
    def warning_count(self) -> int:
        return self._count("warning")

    @property
    def error_count(self) -> int:
        if self.explicit_error_count is not None:
            return self.explicit_error_count
        return self._count("error")

    def set_success_count(self, count: int) -> None:
        self.explicit_success_count = count
        self.metrics["successCount"] = count

    def set_error_count(self, count: int) -> None:
        self.explicit_error_count = count
        self.metrics["errorCount"] = count

    def add_metric(self, key: str, value: Any) -> None:
        self.metrics[key] = value

    def mark_as_successful(self) -> None:
        self.completed = True
        self.successful = True
        self.cancelled = False
        self.completed_at = utcnow()

    def mark_as_failed(self, error_message: str) -> None:
        self.completed = True
        self.successful = False
        self.error_message = error_message
        self.completed_at = utcnow()

    def mark_as_cancelled(self) -> None:
        """Stopped cooperatively; processed_urls hold whatever was gathered."""
        self.completed = True
        self.successful = False
        self.cancelled = True
        self.completed_at = utcnow()
