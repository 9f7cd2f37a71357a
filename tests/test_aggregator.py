"""ResultAggregator and CatalogProcessingResult counting tests."""

from concurrent.futures import ThreadPoolExecutor

from catalog_processing.models.processing_result import CatalogProcessingResult, ProcessedUrl
from catalog_processing.models.url_record import DiscoveredUrl
from catalog_processing.models.validation_result import (
    AssetType,
    EnhancedValidationResult,
    ValidationResult,
    ValidationStatus,
)
from catalog_processing.tools.aggregate_tool import ResultAggregator, normalize_content_type, outcome_status


def new_result() -> CatalogProcessingResult:
    return CatalogProcessingResult(job_id="job-1", phase="mapping")


def test_explicit_zero_count_wins_over_recomputation():
    result = new_result()
    result.processed_urls.append(ProcessedUrl(url="https://example.com/a", status="success"))
    assert result.success_count == 1

    result.set_success_count(0)

    assert result.success_count == 0
    assert result.metrics["successCount"] == 0


def test_counts_recomputed_when_unset():
    result = new_result()
    result.processed_urls.extend(
        [
            ProcessedUrl(url="https://example.com/a", status="success"),
            ProcessedUrl(url="https://example.com/b", status="error"),
            ProcessedUrl(url="https://example.com/c", status="warning"),
        ]
    )
    assert (result.success_count, result.error_count, result.warning_count) == (1, 1, 1)
    assert result.total_processed_count == 3


def test_mark_terminal_states():
    result = new_result()
    result.mark_as_cancelled()
    assert result.completed and result.cancelled and not result.successful

    result.mark_as_failed("boom")
    assert result.error_message == "boom" and not result.successful
    assert result.completed_at is not None


def test_upsert_replaces_by_url():
    agg = ResultAggregator(new_result())
    agg.upsert(ProcessedUrl(url="https://example.com/a", status="pending"))
    agg.upsert(ProcessedUrl(url="https://EXAMPLE.com/a/", status="success"))

    assert len(agg.result.processed_urls) == 1
    assert agg.get("https://example.com/a").status == "success"


def test_normalize_content_type():
    assert normalize_content_type("Text/HTML; charset=UTF-8") == "text/html"
    assert normalize_content_type(None) == "unknown/unknown"
    assert normalize_content_type(" ; x") == "unknown/unknown"


def test_outcome_status_mapping():
    def vr(status, code=None, valid=False):
        return ValidationResult(url="https://example.com", status=status, status_code=code, valid=valid)

    assert outcome_status(vr(ValidationStatus.VALID, 200, True)) == "success"
    assert outcome_status(vr(ValidationStatus.WARNING, 301, True)) == "warning"
    assert outcome_status(vr(ValidationStatus.INVALID, 404)) == "error"
    assert outcome_status(vr(ValidationStatus.ERROR)) == "error"
    assert outcome_status(vr(ValidationStatus.CANCELLED)) == "pending"


def test_add_discovered_keeps_terminal_entries():
    agg = ResultAggregator(new_result())
    agg.record_result(
        ValidationResult(url="https://example.com/a", status=ValidationStatus.VALID, status_code=200, valid=True)
    )

    accepted = agg.add_discovered(
        [
            DiscoveredUrl(url="https://example.com/a", title="A"),
            DiscoveredUrl(url="https://example.com/b", title="B", depth=1),
            DiscoveredUrl(url="ftp://example.com/c"),
        ]
    )

    assert [r.url for r in accepted] == ["https://example.com/b"]
    assert agg.get("https://example.com/a").status == "success"
    assert agg.get("https://example.com/b").status == "pending"
    assert agg.get("https://example.com/b").metadata == {"title": "B", "depth": 1}
    assert agg.get("ftp://example.com/c").status == "error"


def test_finalize_counts_and_histograms():
    agg = ResultAggregator(new_result())
    agg.record_result(
        EnhancedValidationResult(
            url="https://example.com/",
            status=ValidationStatus.VALID,
            status_code=200,
            valid=True,
            content_type="text/html; charset=utf-8",
            asset_type=AssetType.WEBPAGE,
        )
    )
    agg.record_result(
        EnhancedValidationResult(
            url="https://example.com/x.pdf",
            status=ValidationStatus.INVALID,
            status_code=404,
            content_type="text/html",
            asset_type=AssetType.PDF,
        )
    )
    agg.record_error("https://example.com/y", "Connection error: refused")

    counts = agg.finalize_counts()

    assert counts == {"total": 3, "success": 1, "warning": 0, "error": 2, "pending": 0}
    assert agg.result.metrics["contentTypes"] == {"text/html": 2}
    assert agg.result.metrics["assetTypes"] == {"pdf": 1, "webpage": 1}
    assert agg.result.explicit_error_count == 2


def test_snapshot_is_independent_copy():
    agg = ResultAggregator(new_result())
    agg.upsert(ProcessedUrl(url="https://example.com/a", status="pending"))
    snap = agg.snapshot()

    agg.upsert(ProcessedUrl(url="https://example.com/b", status="pending"))

    assert len(snap.processed_urls) == 1
    assert len(agg.result.processed_urls) == 2


def test_concurrent_upserts_keep_one_entry_per_url():
    agg = ResultAggregator(new_result())
    urls = [f"https://example.com/{i % 50}" for i in range(1000)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda u: agg.upsert(ProcessedUrl(url=u, status="success")), urls))

    assert len(agg.result.processed_urls) == 50
    assert agg.counts()["success"] == 50
