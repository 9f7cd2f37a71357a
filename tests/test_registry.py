"""JobRegistry tests."""

import pytest

from catalog_processing.agent.registry import JobRegistry
from catalog_processing.errors import JobAlreadyRunningError
from catalog_processing.models.job import Phase
from catalog_processing.models.processing_result import CatalogProcessingResult, ProcessedUrl
from catalog_processing.tools.aggregate_tool import ResultAggregator


def test_register_is_exclusive_per_job():
    registry = JobRegistry()
    registry.register("job-1", Phase.MAPPING)

    with pytest.raises(JobAlreadyRunningError):
        registry.register("job-1", Phase.VALIDATION)
    registry.register("job-2", Phase.MAPPING)
    assert registry.is_registered("job-2")


def test_release_only_by_owner():
    registry = JobRegistry()
    first = registry.register("job-1", Phase.MAPPING)
    registry.release("job-1", first)
    second = registry.register("job-1", Phase.VALIDATION)

    registry.release("job-1", first)

    assert registry.get("job-1") is second


def test_stop_signals_token():
    registry = JobRegistry()
    execution = registry.register("job-1", Phase.MAPPING)

    assert registry.stop("job-1") is True
    assert execution.token.is_cancelled()
    assert registry.stop("job-2") is False


def test_live_result_is_snapshot():
    registry = JobRegistry()
    execution = registry.register("job-1", Phase.MAPPING)
    assert registry.live_result("job-1") is None

    aggregator = ResultAggregator(CatalogProcessingResult(job_id="job-1", phase="mapping"))
    registry.attach(execution, aggregator=aggregator)
    aggregator.upsert(ProcessedUrl(url="https://example.com/", status="pending"))

    live = registry.live_result("job-1")
    assert live.total_processed_count == 1
    assert live is not aggregator.result


def test_stop_all_and_clear():
    registry = JobRegistry()
    executions = [registry.register(f"job-{i}", Phase.MAPPING) for i in range(3)]

    stopped = registry.stop_all()
    registry.clear()

    assert len(stopped) == 3
    assert all(e.token.is_cancelled() for e in executions)
    assert not registry.is_registered("job-0")
