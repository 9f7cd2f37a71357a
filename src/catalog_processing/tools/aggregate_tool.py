"""Aggregate tool - accumulate per-URL outcomes into a phase result while the phase runs."""

import logging
import threading
from typing import Any, Iterable, Optional

from ..models.processing_result import CatalogProcessingResult, ProcessedUrl
from ..models.url_record import DiscoveredUrl, url_key
from ..models.validation_result import (
    EnhancedValidationResult,
    UNKNOWN_CONTENT_TYPE,
    ValidationResult,
    ValidationStatus,
)
from .validate_tool import check_url_syntax

logger = logging.getLogger(__name__)


def normalize_content_type(content_type: Optional[str]) -> str:
    """'Text/HTML; charset=UTF-8' -> 'text/html'."""
    if not content_type:
        return UNKNOWN_CONTENT_TYPE
    base = content_type.split(";", 1)[0].strip().lower()
    return base or UNKNOWN_CONTENT_TYPE


def outcome_status(result: ValidationResult) -> str:
    """Map a validation result onto a ProcessedUrl status."""
    if result.status == ValidationStatus.VALID:
        return "success"
    if result.status == ValidationStatus.WARNING:
        return "warning"
    if result.status == ValidationStatus.CANCELLED:
        return "pending"
    return "error"


class ResultAggregator:
    """
    Upserts ProcessedUrl entries by URL into a CatalogProcessingResult.
    Safe to update from worker threads while a status poller reads snapshots.
    """

    def __init__(self, result: CatalogProcessingResult):
        self._result = result
        self._lock = threading.RLock()
        self._index: dict[str, int] = {
            url_key(p.url): i for i, p in enumerate(result.processed_urls)
        }

    @property
    def result(self) -> CatalogProcessingResult:
        return self._result

    def upsert(self, processed: ProcessedUrl) -> None:
        key = url_key(processed.url)
        with self._lock:
            idx = self._index.get(key)
            if idx is None:
                self._index[key] = len(self._result.processed_urls)
                self._result.processed_urls.append(processed)
            else:
                self._result.processed_urls[idx] = processed

    def get(self, url: str) -> Optional[ProcessedUrl]:
        with self._lock:
            idx = self._index.get(url_key(url))
            return self._result.processed_urls[idx] if idx is not None else None

    def add_discovered(self, batch: Iterable[DiscoveredUrl], validate_syntax: bool = True) -> list[DiscoveredUrl]:
        """
        Record freshly discovered URLs as pending (or error when the syntax check fails).
        Returns the records that passed and still need a network validation.
        """
        accepted = []
        with self._lock:
            for record in batch:
                existing = self.get(record.url)
                if existing is not None and existing.status != "pending":
                    continue
                metadata: dict[str, Any] = {"title": record.title, "depth": record.depth}
                if validate_syntax:
                    ok, reason = check_url_syntax(record.url)
                    if not ok:
                        self.upsert(ProcessedUrl(url=record.url, status="error", message=reason, metadata=metadata))
                        continue
                self.upsert(ProcessedUrl(url=record.url, status="pending", message="Discovered", metadata=metadata))
                accepted.append(record)
        return accepted

    def record_result(self, result: ValidationResult, metadata: Optional[dict[str, Any]] = None) -> ProcessedUrl:
        """Upsert the terminal outcome for result.url."""
        meta: dict[str, Any] = dict(metadata or {})
        meta["validation_status"] = result.status.value
        meta["content_type"] = normalize_content_type(result.content_type)
        if result.status_code is not None:
            meta["status_code"] = result.status_code
        if isinstance(result, EnhancedValidationResult):
            meta["asset_type"] = result.asset_type.value
            meta["display_name"] = result.display_name
        processed = ProcessedUrl(
            url=result.url,
            status=outcome_status(result),
            message=result.message,
            metadata=meta,
        )
        self.upsert(processed)
        return processed

    def record_validation(self, record: DiscoveredUrl) -> Optional[ProcessedUrl]:
        """Upsert the outcome of a crawl record that carries a validation result."""
        if record.validation_result is None:
            return None
        return self.record_result(record.validation_result, {"title": record.title, "depth": record.depth})

    def record_error(self, url: str, message: str, metadata: Optional[dict[str, Any]] = None) -> None:
        self.upsert(ProcessedUrl(url=url, status="error", message=message, metadata=dict(metadata or {})))

    def _histogram(self, key: str) -> dict[str, int]:
        hist: dict[str, int] = {}
        for p in self._result.processed_urls:
            value = p.metadata.get(key)
            if value:
                hist[value] = hist.get(value, 0) + 1
        return dict(sorted(hist.items(), key=lambda kv: (-kv[1], kv[0])))

    def content_type_histogram(self) -> dict[str, int]:
        with self._lock:
            return self._histogram("content_type")

    def asset_type_histogram(self) -> dict[str, int]:
        with self._lock:
            return self._histogram("asset_type")

    def counts(self) -> dict[str, int]:
        """Live counts computed from the entries, for status polling."""
        with self._lock:
            out = {"total": len(self._result.processed_urls), "success": 0, "warning": 0, "error": 0, "pending": 0}
            for p in self._result.processed_urls:
                out[p.status] += 1
            return out

    def finalize_counts(self) -> dict[str, int]:
        """Store explicit success/error counts so later reads skip recomputation."""
        with self._lock:
            counts = self.counts()
            self._result.set_success_count(counts["success"])
            self._result.set_error_count(counts["error"])
            self._result.add_metric("warningCount", counts["warning"])
            self._result.add_metric("pendingCount", counts["pending"])
            self._result.add_metric("totalCount", counts["total"])
            self._result.add_metric("contentTypes", self._histogram("content_type"))
            asset_types = self._histogram("asset_type")
            if asset_types:
                self._result.add_metric("assetTypes", asset_types)
            return counts

    def snapshot(self) -> CatalogProcessingResult:
        """Consistent deep copy for readers outside the phase thread."""
        with self._lock:
            return self._result.model_copy(deep=True)
