"""CatalogOrchestrator tests: phase lifecycle, gating, single execution, stop and shutdown."""

import time

import pytest

from catalog_processing.agent.orchestrator import CatalogOrchestrator
from catalog_processing.errors import (
    InvalidUrlError,
    JobAlreadyRunningError,
    JobNotFoundError,
    PhasePreconditionError,
)
from catalog_processing.models.classification_result import EnhancedAsset
from catalog_processing.models.job import Phase, PhaseStatus
from catalog_processing.models.page_package import ExtractedPage
from catalog_processing.models.recon import ReconnaissanceHints
from catalog_processing.tools.crawl_tool import DiscoveryEngine
from catalog_processing.tools.validate_tool import ValidationEngine

from conftest import StubAdvisor, build_example_site, build_wide_site


def make_orchestrator(config, storage, site, advisor=None) -> CatalogOrchestrator:
    transport = site.transport()
    return CatalogOrchestrator(
        config,
        storage=storage,
        discovery=DiscoveryEngine(storage, config, transport=transport),
        validator=ValidationEngine(config, transport=transport),
        advisor=advisor or StubAdvisor(),
        transport=transport,
    )


@pytest.fixture
def orchestrator(config, storage, site):
    orch = make_orchestrator(config, storage, site)
    yield orch
    orch.shutdown()


@pytest.fixture
def slow_orchestrator(config, storage):
    # Mapping takes several seconds: 2000 leaves validated at 20ms each
    orch = make_orchestrator(config, storage, build_wide_site(2000, latency=0.02))
    yield orch
    orch.shutdown()


def test_mapping_example_site(orchestrator):
    job = orchestrator.create_job("Example", "https://example.com", max_depth=1, max_urls=50)
    messages: list[str] = []
    batches: list[list] = []

    result = orchestrator.start_mapping(job.id, messages.append, batches.append).result(timeout=30)

    job = orchestrator.get_job(job.id)
    assert job.mapping_status == PhaseStatus.COMPLETED
    assert job.phases[Phase.MAPPING].result_id == result.id
    assert result.successful and result.completed

    assert job.statistics.total_urls_found == 8
    assert job.statistics.valid_urls == 7
    assert job.statistics.invalid_urls == 1
    assert job.statistics.content_types["text/html"] == 4
    assert job.statistics.content_types["image/jpeg"] == 1
    assert result.success_count == 7
    assert result.error_count == 1

    urls = [p.url for p in result.processed_urls]
    assert len(urls) == len(set(urls)) == 8
    assert "https://example.com/wp-admin/" not in urls
    assert not any("other.org" in u for u in urls)
    assert [r.url for b in batches for r in b].count("https://example.com/about") == 1

    stored = orchestrator.get_phase_result(job.id, Phase.MAPPING)
    assert stored.id == result.id
    assert stored.metrics["successCount"] == 7
    assert any(m.startswith("Mapping completed") for m in messages)


def test_create_job_rejects_bad_seed(orchestrator):
    with pytest.raises(InvalidUrlError):
        orchestrator.create_job("bad", "not a url")
    assert orchestrator.list_jobs() == []


def test_create_job_merges_configuration_over_defaults(orchestrator):
    job = orchestrator.create_job("cfg", "https://example.com", configuration={"enhance_with_ai": True})

    assert job.configuration.enhance_with_ai is True
    assert job.configuration.validate_during_mapping is True
    assert job.max_depth == orchestrator.config.crawl_limits.max_depth


def test_later_phase_is_gated_without_mutation(orchestrator):
    job = orchestrator.create_job("gated", "https://example.com", max_depth=1)
    before = orchestrator.get_job(job.id)

    for start in (orchestrator.start_validation, orchestrator.start_extraction, orchestrator.start_enhancement):
        with pytest.raises(PhasePreconditionError):
            start(job.id)

    assert orchestrator.get_job(job.id) == before
    assert not orchestrator.is_running(job.id)


def test_unknown_job(orchestrator):
    with pytest.raises(JobNotFoundError):
        orchestrator.start_mapping("missing")
    with pytest.raises(JobNotFoundError):
        orchestrator.get_job_status("missing")
    assert orchestrator.stop_job("missing") is False


def test_seed_unreachable_completes_with_seed_error(config, storage):
    site = build_example_site()
    site.down_hosts.add("example.com")
    orch = make_orchestrator(config, storage, site)
    job = orch.create_job("down", "https://example.com", max_depth=1)
    messages = []

    result = orch.start_mapping(job.id, status_callback=messages.append).result(timeout=30)

    job = orch.get_job(job.id)
    assert job.mapping_status == PhaseStatus.COMPLETED
    assert result.successful and not result.cancelled
    assert (result.success_count, result.error_count) == (0, 1)
    [seed] = result.processed_urls
    assert seed.url == "https://example.com/"
    assert seed.status == "error"
    assert "Could not reach seed URL" in seed.message
    assert job.statistics.total_urls_found == 1
    assert job.statistics.invalid_urls == 1
    assert any("Could not reach seed URL" in m for m in messages)
    assert not orch.is_running(job.id)
    orch.shutdown()


def test_one_execution_per_job(slow_orchestrator):
    orch = slow_orchestrator
    job = orch.create_job("wide", "https://wide.example", max_depth=1, max_urls=5000)
    future = orch.start_mapping(job.id)

    with pytest.raises(JobAlreadyRunningError):
        orch.start_mapping(job.id)

    orch.stop_job(job.id)
    future.result(timeout=30)
    assert not orch.is_running(job.id)


def test_stop_job_cancels_with_partial_result(slow_orchestrator):
    orch = slow_orchestrator
    job = orch.create_job("wide", "https://wide.example", max_depth=1, max_urls=5000)
    future = orch.start_mapping(job.id)
    time.sleep(0.5)

    status = orch.get_job_status(job.id)
    assert status["is_running"] is True
    assert status["active_phase"] == "mapping"
    assert status["mapping_status"] == "RUNNING"
    assert "progress" in status

    assert orch.stop_job(job.id) is True
    result = future.result(timeout=30)

    job = orch.get_job(job.id)
    assert job.mapping_status == PhaseStatus.CANCELLED
    assert result.cancelled and not result.successful
    assert result.metrics["pendingCount"] > 0
    assert not orch.is_running(job.id)

    # A cancelled mapping may be run again
    again = orch.start_mapping(job.id)
    orch.stop_job(job.id)
    again.result(timeout=30)


def test_shutdown_leaves_no_running_phase(config, storage):
    orch = make_orchestrator(config, storage, build_wide_site(2000, latency=0.02))
    job = orch.create_job("wide", "https://wide.example", max_depth=1, max_urls=5000)
    orch.start_mapping(job.id)
    time.sleep(0.3)

    started = time.monotonic()
    orch.shutdown()
    assert time.monotonic() - started < 5.0

    assert orch.get_job(job.id).mapping_status == PhaseStatus.CANCELLED
    assert not orch.is_running(job.id)
    with pytest.raises(RuntimeError):
        orch.start_mapping(job.id)


def test_advisor_hints_do_not_expand_limits_by_default(config, storage, site):
    hints = ReconnaissanceHints(estimated_url_count=5, recommended_crawl_depth=2, url_patterns=["/news/"])
    advisor = StubAdvisor(hints)
    orch = make_orchestrator(config, storage, site, advisor=advisor)
    job = orch.create_job("hints", "https://example.com", max_depth=1, max_urls=50)

    orch.start_mapping(job.id).result(timeout=30)

    job = orch.get_job(job.id)
    project = orch.discovery.get_project(job.configuration.site_map_project_id)
    assert advisor.calls == ["https://example.com"]
    assert (project.crawl_depth, project.max_pages) == (1, 50)
    assert project.url_patterns == ["/news/"]
    assert job.configuration.advisor_analysis == hints
    assert job.statistics.estimated_url_count == 5
    orch.shutdown()


def test_advisor_expansion_when_allowed(config, storage, site):
    config.advisor.allow_expansion = True
    hints = ReconnaissanceHints(estimated_url_count=5, recommended_crawl_depth=2)
    orch = make_orchestrator(config, storage, site, advisor=StubAdvisor(hints))
    job = orch.create_job("hints", "https://example.com", max_depth=1, max_urls=50)

    orch.start_mapping(job.id).result(timeout=30)

    job = orch.get_job(job.id)
    project = orch.discovery.get_project(job.configuration.site_map_project_id)
    assert (project.crawl_depth, project.max_pages) == (2, 1005)
    assert job.statistics.total_urls_found == 9
    orch.shutdown()


def test_mapping_without_pipelined_validation(orchestrator):
    job = orchestrator.create_job(
        "later", "https://example.com", max_depth=1, configuration={"validate_during_mapping": False}
    )

    result = orchestrator.start_mapping(job.id).result(timeout=30)

    # URLs missed by the pipeline are validated before the phase finishes
    assert result.success_count == 7
    assert result.metrics["pendingCount"] == 0


def test_full_pipeline(orchestrator, storage):
    job = orchestrator.create_job("Example", "https://example.com", max_depth=1, max_urls=50)
    orchestrator.start_mapping(job.id).result(timeout=30)

    validation = orchestrator.start_validation(job.id).result(timeout=30)
    job = orchestrator.get_job(job.id)
    assert job.validation_status == PhaseStatus.COMPLETED
    assert validation.success_count == 7
    assert job.statistics.asset_types["image"] == 1
    assert job.statistics.asset_types["pdf"] == 1
    assert job.statistics.asset_types["dataset"] == 1
    assert job.statistics.asset_types["article"] == 1
    assert job.statistics.asset_types["webpage"] == 3

    extraction = orchestrator.start_extraction(job.id).result(timeout=30)
    pages = {p.url: p for p in storage.load(job.id, "extraction", list[ExtractedPage])}
    assert set(pages) == {
        "https://example.com/",
        "https://example.com/about",
        "https://example.com/news/2024/01/launch-of-new-probe",
        "https://example.com/sitemap-only-page",
    }
    news = pages["https://example.com/news/2024/01/launch-of-new-probe"]
    assert news.meta.title == "Launch of New Probe"
    assert news.meta.description == "The agency launched a new deep space probe."
    assert news.meta.language == "en"
    assert news.signals.schema_types == ["NewsArticle"]
    assert news.signals.is_article_like
    assert extraction.success_count == 4
    assert orchestrator.get_job(job.id).statistics.extracted_pages == 4

    enhancement = orchestrator.start_enhancement(job.id).result(timeout=30)
    assets = {a.url: a for a in storage.load(job.id, "enhancement", list[EnhancedAsset])}
    assert len(assets) == 7
    assert assets["https://example.com/news/2024/01/launch-of-new-probe"].category == "NEWS"
    assert assets["https://example.com/images/galaxy.jpg"].category == "MEDIA"
    assert assets["https://example.com/data/catalog.csv"].category == "DATASET"
    assert all(a.source == "heuristic" for a in assets.values())
    job = orchestrator.get_job(job.id)
    assert job.enhancement_status == PhaseStatus.COMPLETED
    assert job.statistics.enhanced_assets == 7
    assert sum(job.statistics.extra["categories"].values()) == 7
    assert enhancement.total_processed_count == 7


def test_extraction_can_be_disabled(orchestrator, storage):
    job = orchestrator.create_job(
        "noextract", "https://example.com", max_depth=1, configuration={"extract_metadata": False}
    )
    orchestrator.start_mapping(job.id).result(timeout=30)
    orchestrator.start_validation(job.id).result(timeout=30)

    result = orchestrator.start_extraction(job.id).result(timeout=30)

    assert result.successful
    assert result.total_processed_count == 0
    assert storage.load(job.id, "extraction", list[ExtractedPage]) == []


def test_status_and_listing(orchestrator):
    first = orchestrator.create_job("one", "https://example.com", max_depth=1)
    second = orchestrator.create_job("two", "https://example.com/about", max_depth=0)
    orchestrator.start_mapping(first.id).result(timeout=30)

    status = orchestrator.get_job_status(first.id)

    assert [j.id for j in orchestrator.list_jobs()] == [first.id, second.id]
    assert status["mapping_status"] == "COMPLETED"
    assert status["validation_status"] == "NOT_STARTED"
    assert status["is_running"] is False
    assert status["statistics"]["total_urls_found"] == 8
    assert status["phases"]["mapping"]["result_id"]
    assert "active_phase" not in status
