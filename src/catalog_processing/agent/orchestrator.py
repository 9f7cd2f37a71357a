"""Catalog orchestrator - control plane for the catalog processing pipeline."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

import httpx
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from ..cancellation import CancellationToken, is_cancelled
from ..config.loader import Config
from ..errors import InvalidUrlError, JobNotFoundError
from ..models.classification_result import EnhancedAsset
from ..models.job import JobConfiguration, Phase, PhaseStatus, ProcessingJob
from ..models.page_package import ExtractedPage
from ..models.processing_result import CatalogProcessingResult, ProcessedUrl
from ..models.recon import ReconnaissanceHints
from ..models.url_record import DiscoveredUrl, DiscoveryProject, ProjectStatus
from ..models.validation_result import AssetType, EnhancedValidationResult, ValidationResult, ValidationStatus
from ..tools.aggregate_tool import ResultAggregator
from ..tools.classify_llm_tool import classify_heuristic, classify_llm_tool
from ..tools.crawl_tool import DiscoveryEngine
from ..tools.extract_tool import extract_tool, needs_render, visible_text
from ..tools.fetch_tool import FetchResult, build_client, fetch_tool
from ..tools.llm_tool import get_api_key
from ..tools.recon_llm_tool import ReconnaissanceAdvisor
from ..tools.render_tool import render_tool
from ..tools.storage_tool import StorageGateway
from ..tools.validate_tool import ValidationEngine, check_url_syntax
from .registry import Execution, JobRegistry

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
ResultsCallback = Callable[[list], None]
Notify = Callable[[str], None]

JOB_CATEGORY = "job"
RESULT_CATEGORY = "result"
VALIDATION_CATEGORY = "validation"
EXTRACTION_CATEGORY = "extraction"
ENHANCEMENT_CATEGORY = "enhancement"

# Budget added on top of the advisor's volume estimate when expansion is allowed
ESTIMATE_HEADROOM = 1000

_HTML_ASSETS = (AssetType.WEBPAGE, AssetType.ARTICLE)


def _emit(callback: Optional[Callable], payload: Any) -> None:
    if callback is None:
        return
    try:
        callback(payload)
    except Exception:
        logger.warning("Callback failed", exc_info=True)


class CatalogOrchestrator:
    """
    Owns the ProcessingJob state machine and sequences the phases
    Mapping -> Validation -> Extraction -> Enhancement.
    Does NOT fetch, parse or classify directly; every external effect goes through a tool.

    Input errors (unknown job, phase precondition, job already running) are raised
    by the start_* calls themselves. Failures inside a phase surface only through
    the returned Future.
    """

    def __init__(
        self,
        config: Config,
        storage: Optional[StorageGateway] = None,
        discovery: Optional[DiscoveryEngine] = None,
        validator: Optional[ValidationEngine] = None,
        advisor: Optional[ReconnaissanceAdvisor] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self.storage = storage or StorageGateway(config.storage.base_dir)
        self.discovery = discovery or DiscoveryEngine(self.storage, config, transport=transport)
        self._owns_validator = validator is None
        self.validator = validator or ValidationEngine(config, transport=transport)
        self.advisor = advisor or ReconnaissanceAdvisor(config, transport=transport)
        self.registry = JobRegistry()
        self._executor = ThreadPoolExecutor(
            max_workers=config.orchestrator.max_concurrent_jobs,
            thread_name_prefix="job",
        )
        # Serializes read-modify-write of persisted job records
        self._job_lock = threading.RLock()
        self._closed = False

    def __enter__(self) -> "CatalogOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    # Jobs and results

    def create_job(
        self,
        name: str,
        seed_url: str,
        max_depth: Optional[int] = None,
        max_urls: Optional[int] = None,
        configuration: Optional[JobConfiguration | dict[str, Any]] = None,
    ) -> ProcessingJob:
        ok, reason = check_url_syntax(seed_url)
        if not ok:
            raise InvalidUrlError(seed_url, reason)
        if isinstance(configuration, JobConfiguration):
            job_config = configuration.model_copy(deep=True)
        else:
            job_config = JobConfiguration.model_validate(
                {**self.config.job_defaults.model_dump(), **(configuration or {})}
            )
        limits = self.config.crawl_limits
        job = ProcessingJob(
            name=name,
            seed_url=seed_url.strip(),
            max_depth=limits.max_depth if max_depth is None else max_depth,
            max_urls=max_urls or limits.max_urls,
            configuration=job_config,
        )
        self._save_job(job)
        logger.info("Created job %s (%s) for %s", job.id, name, job.seed_url)
        return job

    def get_job(self, job_id: str) -> ProcessingJob:
        job = self.storage.load(job_id, JOB_CATEGORY, ProcessingJob)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> list[ProcessingJob]:
        jobs = []
        for job_id in self.storage.list_ids(JOB_CATEGORY):
            job = self.storage.load(job_id, JOB_CATEGORY, ProcessingJob)
            if job is not None:
                jobs.append(job)
        return sorted(jobs, key=lambda j: j.created_at)

    def get_result(self, result_id: str) -> Optional[CatalogProcessingResult]:
        return self.storage.load(result_id, RESULT_CATEGORY, CatalogProcessingResult)

    def get_phase_result(self, job_id: str, phase: Phase) -> Optional[CatalogProcessingResult]:
        """Live snapshot while the phase runs, else the stored result of its last run."""
        execution = self.registry.get(job_id)
        if execution is not None and execution.phase == phase:
            live = self.registry.live_result(job_id)
            if live is not None:
                return live
        result_id = self.get_job(job_id).phase_state(phase).result_id
        return self.get_result(result_id) if result_id else None

    def _save_job(self, job: ProcessingJob) -> None:
        with self._job_lock:
            job.touch()
            self.storage.save(job, job.id, JOB_CATEGORY)

    # Phase control

    def start_mapping(
        self,
        job_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
    ) -> Future:
        """Reconnaissance, crawl and pipelined validation. results_callback gets DiscoveredUrl batches."""
        return self._start(job_id, Phase.MAPPING, self._run_mapping, status_callback, results_callback)

    def start_validation(
        self,
        job_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
    ) -> Future:
        """Enhanced validation of every mapped URL. results_callback gets the EnhancedValidationResult list."""
        return self._start(job_id, Phase.VALIDATION, self._run_validation, status_callback, results_callback)

    def start_extraction(
        self,
        job_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
    ) -> Future:
        """Page metadata extraction for valid HTML assets. results_callback gets ExtractedPage records."""
        return self._start(job_id, Phase.EXTRACTION, self._run_extraction, status_callback, results_callback)

    def start_enhancement(
        self,
        job_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
    ) -> Future:
        """Category, summary and keywords per valid asset. results_callback gets EnhancedAsset records."""
        return self._start(job_id, Phase.ENHANCEMENT, self._run_enhancement, status_callback, results_callback)

    def stop_job(self, job_id: str) -> bool:
        """Request a cooperative stop. True when an execution was registered for the job."""
        return self.registry.stop(job_id)

    def is_running(self, job_id: str) -> bool:
        return self.registry.is_registered(job_id)

    def get_job_status(self, job_id: str) -> dict[str, Any]:
        job = self.get_job(job_id)
        execution = self.registry.get(job_id)
        status: dict[str, Any] = {
            "id": job.id,
            "name": job.name,
            "seed_url": job.seed_url,
            "max_depth": job.max_depth,
            "max_urls": job.max_urls,
            "created_at": job.created_at.isoformat(),
            "last_modified": job.last_modified.isoformat(),
            "mapping_status": job.mapping_status.value,
            "validation_status": job.validation_status.value,
            "extraction_status": job.extraction_status.value,
            "enhancement_status": job.enhancement_status.value,
            "phases": {
                phase.value: {
                    "status": state.status.value,
                    "result_id": state.result_id,
                    "error_message": state.error_message,
                }
                for phase, state in ((p, job.phase_state(p)) for p in Phase)
            },
            "statistics": job.statistics.model_dump(mode="json"),
            "is_running": execution is not None,
        }
        if execution is not None:
            status["active_phase"] = execution.phase.value
            status["stop_requested"] = execution.token.is_cancelled()
            if execution.aggregator is not None:
                status["progress"] = execution.aggregator.counts()
        return status

    def _start(
        self,
        job_id: str,
        phase: Phase,
        runner: Callable,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> Future:
        if self._closed:
            raise RuntimeError("Orchestrator has been shut down")
        # Precondition first: a rejected call leaves no trace
        self.get_job(job_id).check_can_begin(phase)
        execution = self.registry.register(job_id, phase)
        try:
            with self._job_lock:
                job = self.get_job(job_id)
                job.begin_phase(phase)
                self._save_job(job)
            aggregator = ResultAggregator(CatalogProcessingResult(job_id=job_id, phase=phase.value))
            self.registry.attach(execution, aggregator=aggregator)
            future = self._executor.submit(
                self._run_phase, job, phase, runner, execution, aggregator, status_callback, results_callback
            )
            self.registry.attach(execution, future=future)
        except Exception:
            self.registry.release(job_id, execution)
            raise
        return future

    def _notifier(self, job: ProcessingJob, status_callback: Optional[StatusCallback]) -> Notify:
        def notify(message: str) -> None:
            logger.info("[job %s] %s", job.id[:8], message)
            _emit(status_callback, message)

        return notify

    def _run_phase(
        self,
        job: ProcessingJob,
        phase: Phase,
        runner: Callable,
        execution: Execution,
        aggregator: ResultAggregator,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> CatalogProcessingResult:
        """Shared lifecycle for every phase: run, then COMPLETED, CANCELLED or FAILED."""
        result = aggregator.result
        notify = self._notifier(job, status_callback)
        name = phase.value.capitalize()
        try:
            notify(f"{name} started")
            runner(job, execution.token, aggregator, status_callback, results_callback)
            counts = aggregator.finalize_counts()
            summary = f"{counts['success']} ok, {counts['warning']} warnings, {counts['error']} errors"
            if execution.token.is_cancelled():
                result.mark_as_cancelled()
                job.cancel_phase(phase, result.id)
                notify(f"{name} cancelled with partial results: {summary}")
            else:
                result.mark_as_successful()
                job.complete_phase(phase, result.id)
                notify(f"{name} completed: {summary}")
        except Exception as e:
            if self._closed and execution.token.is_cancelled():
                # Torn down mid-phase; executors refusing work is expected
                logger.info("%s for job %s interrupted by shutdown: %s", name, job.id, e)
                aggregator.finalize_counts()
                result.mark_as_cancelled()
                job.cancel_phase(phase, result.id)
                self._persist(job, result)
                return result
            logger.exception("%s failed for job %s", name, job.id)
            message = str(e) or type(e).__name__
            result.mark_as_failed(message)
            job.fail_phase(phase, message, result.id)
            notify(f"{name} failed: {message}")
            self._persist(job, result)
            raise
        else:
            self._persist(job, result)
            return result
        finally:
            self.registry.release(job.id, execution)

    def _persist(self, job: ProcessingJob, result: CatalogProcessingResult) -> None:
        try:
            self.storage.save(result, result.id, RESULT_CATEGORY)
            self._save_job(job)
        except Exception:
            logger.exception("Failed to persist %s result for job %s", result.phase, job.id)

    # Mapping

    def _advise(self, job: ProcessingJob) -> ReconnaissanceHints:
        try:
            hints = self.advisor.analyze(job.seed_url)
        except Exception as e:
            logger.warning("Reconnaissance failed for %s: %s", job.seed_url, e)
            hints = None
        return hints or ReconnaissanceHints(rationale="No reconnaissance available")

    def _effective_limits(self, job: ProcessingJob, hints: ReconnaissanceHints) -> tuple[int, int]:
        """The job's depth and budget, widened by the advisor only when expansion is allowed."""
        depth, max_urls = job.max_depth, job.max_urls
        if self.config.advisor.allow_expansion:
            if hints.recommended_crawl_depth is not None:
                depth = max(depth, hints.recommended_crawl_depth)
            if hints.estimated_url_count is not None:
                max_urls = max(max_urls, hints.estimated_url_count + ESTIMATE_HEADROOM)
        return depth, max_urls

    def _prepare_project(
        self, job: ProcessingJob, depth: int, max_urls: int, hints: ReconnaissanceHints
    ) -> DiscoveryProject:
        project_id = job.configuration.site_map_project_id
        project = self.discovery.load_project(project_id) if project_id else None
        if project is None:
            return self.discovery.create_project(
                name=f"{job.name} site map",
                seed_url=job.seed_url,
                crawl_depth=depth,
                max_pages=max_urls,
                url_patterns=hints.url_patterns,
            )
        project.crawl_depth = depth
        project.max_pages = max_urls
        if hints.url_patterns:
            project.url_patterns = list(hints.url_patterns)
        self.discovery.save_project(project)
        return project

    def _run_mapping(
        self,
        job: ProcessingJob,
        token: CancellationToken,
        aggregator: ResultAggregator,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> None:
        notify = self._notifier(job, status_callback)
        settings = job.configuration

        # 1. Reconnaissance
        notify(f"Analyzing {job.seed_url}")
        hints = self._advise(job)
        settings.advisor_analysis = hints
        if hints.estimated_url_count is not None:
            job.statistics.estimated_url_count = hints.estimated_url_count
        depth, max_urls = self._effective_limits(job, hints)
        if is_cancelled(token):
            return

        # 2. Discovery project, new or resumed
        project = self._prepare_project(job, depth, max_urls, hints)
        settings.site_map_project_id = project.id
        self._save_job(job)
        notify(f"Mapping {job.seed_url} (depth {depth}, up to {max_urls} URLs)")

        prior = self.discovery.get_crawl_results(project.id)
        for rec in prior:
            if rec.validation_result is not None:
                aggregator.record_validation(rec)
            else:
                aggregator.add_discovered([rec], validate_syntax=False)

        def on_progress(done: int, total: int, errors: int) -> None:
            notify(f"Validated {done}/{total} URLs ({errors} connection errors)")

        with self.validator.pool(settings.concurrent_validations, token, on_progress) as pool:
            if settings.validate_during_mapping:
                for rec in prior:
                    if rec.validation_result is None:
                        pool.submit(rec.url)

            def on_batch(batch: list[DiscoveredUrl]) -> None:
                accepted = aggregator.add_discovered(batch, validate_syntax=settings.validate_during_mapping)
                if settings.validate_during_mapping:
                    for rec in accepted:
                        pool.submit(rec.url)
                _emit(results_callback, batch)

            # 3. Crawl; validation of each batch starts while the crawl continues
            records = self.discovery.start_crawl(
                project.id,
                status_callback=lambda m: _emit(status_callback, m),
                results_callback=on_batch,
                cancel_token=token,
            ).result()

            if not records:
                project = self.discovery.get_project(project.id)
                if project.status.startswith(ProjectStatus.FAILED):
                    # Nothing discovered; the seed itself is the one failed URL
                    notify(project.status)
                    seed = ValidationResult(url=project.seed_url, status=ValidationStatus.ERROR, message=project.status)
                    aggregator.record_result(seed, {"depth": 0})

            # 4. Validate whatever the pipeline has not covered
            missing = [r for r in records if r.validation_result is None and not pool.has(r.url)]
            if missing and not is_cancelled(token):
                notify(f"Validating {len(missing)} remaining URLs")
            for rec in missing:
                pool.submit(rec.url)
            outcomes = pool.results()

        # 5. Final per-URL outcomes, counts and histogram
        for rec in records:
            outcome = outcomes.get(rec.url)
            if outcome is not None and outcome.status != ValidationStatus.CANCELLED:
                rec.validation_result = outcome
            if rec.validation_result is not None:
                aggregator.record_validation(rec)
            elif outcome is not None:
                aggregator.record_result(outcome, {"title": rec.title, "depth": rec.depth})
            elif aggregator.get(rec.url) is None:
                aggregator.add_discovered([rec], validate_syntax=False)
        self.discovery.save_results(project.id, records)

        counts = aggregator.counts()
        stats = job.statistics
        stats.total_urls_found = counts["total"]
        stats.valid_urls = counts["success"] + counts["warning"]
        stats.invalid_urls = counts["error"]
        stats.content_types = aggregator.content_type_histogram()
        stats.extra["pending_urls"] = counts["pending"]

    # Validation

    def _mapped_urls(self, job: ProcessingJob) -> list[DiscoveredUrl]:
        project_id = job.configuration.site_map_project_id
        return self.discovery.get_crawl_results(project_id) if project_id else []

    def _run_validation(
        self,
        job: ProcessingJob,
        token: CancellationToken,
        aggregator: ResultAggregator,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> None:
        notify = self._notifier(job, status_callback)
        urls = [r.url for r in self._mapped_urls(job)]
        notify(f"Validating {len(urls)} mapped URLs")

        def on_progress(done: int, total: int, errors: int) -> None:
            notify(f"Validated {done}/{total} URLs ({errors} connection errors)")

        results = self.validator.validate_urls(
            urls,
            concurrency=job.configuration.concurrent_validations,
            cancel_token=token,
            progress_callback=on_progress,
            enhanced=True,
        )
        for vr in results:
            aggregator.record_result(vr)
        self.storage.save(results, job.id, VALIDATION_CATEGORY)
        _emit(results_callback, results)

        counts = aggregator.counts()
        stats = job.statistics
        stats.valid_urls = counts["success"] + counts["warning"]
        stats.invalid_urls = counts["error"]
        stats.content_types = aggregator.content_type_histogram()
        stats.asset_types = aggregator.asset_type_histogram()

    def _validated_assets(self, job: ProcessingJob) -> list[EnhancedValidationResult]:
        results = self.storage.load(job.id, VALIDATION_CATEGORY, list[EnhancedValidationResult]) or []
        return [r for r in results if r.valid]

    def _map_cancellable(self, fn: Callable, items: list, token: CancellationToken, workers: int) -> list:
        """fn over items on a bounded pool; items reached after a stop map to None."""

        def run(item):
            if is_cancelled(token):
                return None
            return fn(item)

        with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="phase") as pool:
            return list(pool.map(run, items))

    # Extraction

    def _fetch_with_retry(self, client: httpx.Client, url: str) -> FetchResult:
        """Fetch with retry for transient failures; the last attempt's result is returned."""
        policy = self.config.retry_policy
        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(multiplier=policy.backoff_seconds, max=30),
            retry=retry_if_result(lambda r: r.error is not None),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return retrying(fetch_tool, url, client=client)

    def _extract_page(self, client: httpx.Client, url: str) -> ExtractedPage:
        fetch = self._fetch_with_retry(client, url)
        if fetch.error or not 200 <= fetch.http_status < 300:
            return ExtractedPage(
                url=url,
                final_url=fetch.final_url,
                status=fetch.http_status or None,
                error=fetch.error or f"HTTP {fetch.http_status}",
            )

        html, final_url, fetch_mode = fetch.html, fetch.final_url, "http"
        policy = self.config.render_policy
        if needs_render(html, visible_text(html), policy):
            rendered = render_tool(final_url, policy.timeout_ms, self.config.crawl_limits.user_agent)
            if not rendered.error and rendered.html:
                html, final_url, fetch_mode = rendered.html, rendered.final_url, "render"

        try:
            return extract_tool(
                url=url,
                html=html,
                final_url=final_url,
                http_status=fetch.http_status,
                fetch_mode=fetch_mode,
                content_type=fetch.content_type,
                config=self.config,
            )
        except Exception as e:
            logger.warning("Extraction failed for %s: %s", url, e)
            return ExtractedPage(url=url, final_url=final_url, status=fetch.http_status, error=f"Extraction error: {e}")

    def _run_extraction(
        self,
        job: ProcessingJob,
        token: CancellationToken,
        aggregator: ResultAggregator,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> None:
        notify = self._notifier(job, status_callback)
        if not job.configuration.extract_metadata:
            notify("Metadata extraction disabled for this job")
            self.storage.save([], job.id, EXTRACTION_CATEGORY)
            return
        targets = [
            v for v in self._validated_assets(job)
            if v.asset_type in _HTML_ASSETS and "html" in v.content_type.lower()
        ]
        notify(f"Extracting metadata from {len(targets)} pages")

        with build_client(
            self.config.crawl_limits.request_timeout,
            transport=self._transport,
            user_agent=self.config.crawl_limits.user_agent,
        ) as client:
            pages = self._map_cancellable(
                lambda v: self._extract_page(client, v.url),
                targets,
                token,
                job.configuration.concurrent_validations,
            )

        extracted: list[ExtractedPage] = []
        for target, page in zip(targets, pages):
            if page is None:
                aggregator.upsert(ProcessedUrl(url=target.url, status="pending", message="Not extracted"))
                continue
            extracted.append(page)
            if page.error:
                aggregator.record_error(page.url, page.error)
            else:
                aggregator.upsert(
                    ProcessedUrl(
                        url=page.url,
                        status="success",
                        message=page.meta.title or "",
                        metadata={
                            "fetch_mode": page.fetch_mode,
                            "content_hash": page.content_hash,
                            "word_count": page.signals.word_count,
                        },
                    )
                )
        self.storage.save(extracted, job.id, EXTRACTION_CATEGORY)
        _emit(results_callback, extracted)
        job.statistics.extracted_pages = sum(1 for p in extracted if not p.error)

    # Enhancement

    def _run_enhancement(
        self,
        job: ProcessingJob,
        token: CancellationToken,
        aggregator: ResultAggregator,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
    ) -> None:
        notify = self._notifier(job, status_callback)
        assets = self._validated_assets(job)
        pages = self.storage.load(job.id, EXTRACTION_CATEGORY, list[ExtractedPage]) or []
        pages_by_url = {p.url: p for p in pages if not p.error}
        use_llm = job.configuration.enhance_with_ai and bool(get_api_key(self.config.advisor))
        notify(f"Enhancing {len(assets)} assets ({'LLM' if use_llm else 'heuristic'} classification)")

        def enhance(v: EnhancedValidationResult) -> EnhancedAsset:
            page = pages_by_url.get(v.url)
            if page is not None and use_llm:
                return classify_llm_tool(page, v.asset_type, self.config)
            return classify_heuristic(v.url, v.asset_type, page, title=v.display_name)

        enhanced = self._map_cancellable(enhance, assets, token, job.configuration.concurrent_validations)

        done: list[EnhancedAsset] = []
        categories: dict[str, int] = {}
        for v, asset in zip(assets, enhanced):
            if asset is None:
                aggregator.upsert(ProcessedUrl(url=v.url, status="pending", message="Not enhanced"))
                continue
            done.append(asset)
            categories[asset.category] = categories.get(asset.category, 0) + 1
            aggregator.upsert(
                ProcessedUrl(
                    url=asset.url,
                    status="warning" if asset.needs_review else "success",
                    message=asset.category,
                    metadata={
                        "category": asset.category,
                        "asset_type": asset.asset_type.value,
                        "source": asset.source,
                        "confidence": asset.confidence,
                    },
                )
            )
        self.storage.save(done, job.id, ENHANCEMENT_CATEGORY)
        _emit(results_callback, done)
        job.statistics.enhanced_assets = len(done)
        job.statistics.extra["categories"] = categories

    # Teardown

    def shutdown(self) -> None:
        """
        Best-effort: signal every registered execution, cancel what has not started,
        wait the grace period, then mark anything still RUNNING as CANCELLED.
        Work abandoned mid-flight is not guaranteed to have stopped.
        """
        if self._closed:
            return
        self._closed = True
        executions = self.registry.stop_all()
        futures = [e.future for e in executions if e.future is not None]
        for future in futures:
            future.cancel()
        if futures:
            wait(futures, timeout=self.config.orchestrator.shutdown_grace_seconds)

        for execution in executions:
            future = execution.future
            if future is None or future.cancelled() or not future.done():
                self._abandon(execution)
        self.registry.clear()
        self.discovery.shutdown()
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_validator and not any(e.future and not e.future.done() for e in executions):
            self.validator.close()
        logger.info("Orchestrator shut down (%d executions signalled)", len(executions))

    def _abandon(self, execution: Execution) -> None:
        """Record an execution that did not finish within the grace period as CANCELLED."""
        try:
            with self._job_lock:
                job = self.get_job(execution.job_id)
                if job.phase_status(execution.phase) != PhaseStatus.RUNNING:
                    return
                result = (
                    execution.aggregator.snapshot()
                    if execution.aggregator is not None
                    else CatalogProcessingResult(job_id=job.id, phase=execution.phase.value)
                )
                result.mark_as_cancelled()
                self.storage.save(result, result.id, RESULT_CATEGORY)
                job.cancel_phase(execution.phase, result.id)
                self._save_job(job)
            logger.warning("Abandoned %s execution for job %s at shutdown", execution.phase.value, job.id)
        except Exception:
            logger.exception("Could not mark job %s cancelled at shutdown", execution.job_id)
