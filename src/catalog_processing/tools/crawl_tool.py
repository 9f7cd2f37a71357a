"""Crawl tool - resumable, deduplicating discovery of URLs from a seed, its sitemaps and internal links."""

import logging
import re
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, stop_any, wait_exponential

from ..cancellation import CancellationToken, is_cancelled
from ..config.loader import Config
from ..errors import InvalidUrlError, ProjectNotFoundError
from ..models.url_record import (
    DiscoveredUrl,
    DiscoveryProject,
    DiscoveryStatus,
    FrontierEntry,
    ProjectStatus,
    url_key,
)
from ..models.validation_result import AssetType
from .fetch_tool import build_client
from .storage_tool import StorageGateway
from .validate_tool import check_url_syntax, detect_asset_type, display_name_from_url

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
ResultsCallback = Callable[[list[DiscoveredUrl]], None]

PROJECT_CATEGORY = "project"
CRAWL_CATEGORY = "crawl"
CRAWL_METADATA_CATEGORY = "crawl_metadata"
FRONTIER_CATEGORY = "frontier"

KNOWN_SITEMAPS = (
    "sitemap.xml",
    "sitemap_index.xml",
    "wp-sitemap.xml",
    "news-sitemap.xml",
    "post-sitemap.xml",
    "page-sitemap.xml",
)
MAX_SITEMAP_DOCUMENTS = 50

_DEFAULT_PORTS = {"http": 80, "https": 443}
_FETCHABLE_TYPES = (AssetType.WEBPAGE, AssetType.ARTICLE)


def normalize_url(url: str, base: str | None = None) -> str:
    """Normalize URL: resolve against base, strip fragment and default port, lowercase scheme/host."""
    url = url.strip()
    if base:
        url = urljoin(base, url)
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"

    # Strip fragment and userinfo
    result = f"{scheme}://{netloc}{parsed.path or '/'}"
    if parsed.query:
        result += "?" + parsed.query
    return result


def dedup_key(url: str) -> str:
    """Identity of a URL across crawl runs."""
    try:
        return url_key(normalize_url(url))
    except ValueError:
        return url_key(url)


def _bare_host(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def _compile_patterns(patterns: Iterable[str]) -> list[re.Pattern]:
    compiled = []
    for p in patterns:
        try:
            compiled.append(re.compile(p, re.I))
        except re.error:
            # Hints may be plain path fragments rather than regexes
            compiled.append(re.compile(re.escape(p), re.I))
    return compiled


def _dedup_records(records: Iterable[DiscoveredUrl]) -> list[DiscoveredUrl]:
    """First occurrence wins; a later duplicate only contributes a missing validation result."""
    by_key: dict[str, DiscoveredUrl] = {}
    for rec in records:
        existing = by_key.get(rec.key)
        if existing is None:
            by_key[rec.key] = rec
        elif existing.validation_result is None and rec.validation_result is not None:
            existing.validation_result = rec.validation_result
    return list(by_key.values())


@dataclass
class _PageOutcome:
    fetched: bool = False
    ok: bool = False
    title: str = ""
    status_code: int = 0
    content_type: str = ""
    final_url: str = ""
    links: list[str] = field(default_factory=list)
    sitemap_urls: list[str] = field(default_factory=list)
    error: Optional[str] = None


class _Frontier:
    """Depth-ordered queue; hint-matching URLs are visited ahead of others at the same depth."""

    def __init__(self, hints: list[re.Pattern]):
        self._hints = hints
        self._levels: dict[int, tuple[deque, deque]] = {}

    def __len__(self) -> int:
        return sum(len(p) + len(n) for p, n in self._levels.values())

    def push(self, entry: FrontierEntry) -> None:
        preferred, normal = self._levels.setdefault(entry.depth, (deque(), deque()))
        if any(h.search(entry.url) for h in self._hints):
            preferred.append(entry)
        else:
            normal.append(entry)

    def pop(self) -> Optional[FrontierEntry]:
        while self._levels:
            depth = min(self._levels)
            preferred, normal = self._levels[depth]
            if preferred:
                return preferred.popleft()
            if normal:
                return normal.popleft()
            del self._levels[depth]
        return None

    def entries(self) -> list[FrontierEntry]:
        out = []
        for depth in sorted(self._levels):
            preferred, normal = self._levels[depth]
            out.extend(preferred)
            out.extend(normal)
        return out


class DiscoveryEngine:
    """
    Owns discovery projects and their crawl-result sets.
    One crawl per project at a time; dedup set and frontier belong to that crawl.
    """

    def __init__(
        self,
        storage: StorageGateway,
        config: Config,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.storage = storage
        self.config = config
        self.limits = config.crawl_limits
        self._transport = transport
        self._exclude = _compile_patterns(self.limits.exclude_patterns)
        self._executor = ThreadPoolExecutor(
            max_workers=config.orchestrator.max_concurrent_jobs,
            thread_name_prefix="crawl",
        )
        self._active: dict[str, Future] = {}
        self._lock = threading.RLock()

    # Projects

    def create_project(
        self,
        name: str,
        seed_url: str,
        crawl_depth: Optional[int] = None,
        max_pages: Optional[int] = None,
        url_patterns: Optional[list[str]] = None,
    ) -> DiscoveryProject:
        ok, reason = check_url_syntax(seed_url)
        if not ok:
            raise InvalidUrlError(seed_url, reason)
        project = DiscoveryProject(
            name=name,
            seed_url=normalize_url(seed_url),
            crawl_depth=self.limits.max_depth if crawl_depth is None else crawl_depth,
            max_pages=max_pages or self.limits.max_urls,
            url_patterns=list(url_patterns or []),
        )
        self.storage.save(project, project.id, PROJECT_CATEGORY)
        logger.info("Created discovery project %s for %s", project.id, project.seed_url)
        return project

    def load_project(self, project_id: str) -> Optional[DiscoveryProject]:
        return self.storage.load(project_id, PROJECT_CATEGORY, DiscoveryProject)

    def get_project(self, project_id: str) -> DiscoveryProject:
        project = self.load_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def save_project(self, project: DiscoveryProject) -> None:
        self.storage.save(project, project.id, PROJECT_CATEGORY)

    def list_projects(self) -> list[DiscoveryProject]:
        projects = []
        for project_id in self.storage.list_ids(PROJECT_CATEGORY):
            project = self.load_project(project_id)
            if project is not None:
                projects.append(project)
        return sorted(projects, key=lambda p: p.created_at)

    # Crawl results

    def get_crawl_results(self, project_id: str) -> list[DiscoveredUrl]:
        """All recorded URLs for a project, deduplicated, whether stored whole or in chunks."""
        meta = self.storage.load(project_id, CRAWL_METADATA_CATEGORY, dict) or {}
        if meta.get("chunked"):
            records: list[DiscoveredUrl] = []
            for i in range(int(meta.get("chunks", 0))):
                chunk = self.storage.load(project_id, f"crawl_chunk_{i}", list[DiscoveredUrl])
                if chunk is None:
                    logger.warning("Missing crawl chunk %d for project %s", i, project_id)
                    continue
                records.extend(chunk)
        else:
            records = self.storage.load(project_id, CRAWL_CATEGORY, list[DiscoveredUrl]) or []
        return _dedup_records(records)

    def save_results(self, project_id: str, results: list[DiscoveredUrl]) -> list[DiscoveredUrl]:
        """Replace the project's crawl-result set. Large sets are split into chunks."""
        results = _dedup_records(results)
        size = self.limits.storage_chunk_size
        old_meta = self.storage.load(project_id, CRAWL_METADATA_CATEGORY, dict) or {}
        old_chunks = int(old_meta.get("chunks", 0)) if old_meta.get("chunked") else 0

        # Data first, then the metadata that points at it
        if len(results) > size:
            chunks = [results[i : i + size] for i in range(0, len(results), size)]
            for i, chunk in enumerate(chunks):
                self.storage.save(chunk, project_id, f"crawl_chunk_{i}")
            self.storage.save(
                {"chunked": True, "chunks": len(chunks), "total": len(results)},
                project_id,
                CRAWL_METADATA_CATEGORY,
            )
            self.storage.delete(project_id, CRAWL_CATEGORY)
            new_chunks = len(chunks)
        else:
            self.storage.save(results, project_id, CRAWL_CATEGORY)
            self.storage.save(
                {"chunked": False, "chunks": 0, "total": len(results)},
                project_id,
                CRAWL_METADATA_CATEGORY,
            )
            new_chunks = 0
        for i in range(new_chunks, old_chunks):
            self.storage.delete(project_id, f"crawl_chunk_{i}")
        logger.debug("Saved %d crawl results for project %s", len(results), project_id)
        return results

    def _save_frontier(self, project_id: str, entries: list[FrontierEntry]) -> None:
        if entries:
            self.storage.save(entries, project_id, FRONTIER_CATEGORY)
        else:
            self.storage.delete(project_id, FRONTIER_CATEGORY)

    # Crawling

    def is_crawling(self, project_id: str) -> bool:
        with self._lock:
            future = self._active.get(project_id)
            return future is not None and not future.done()

    def start_crawl(
        self,
        project_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Future:
        """
        Run crawl() on the engine's executor. If the project already has an active
        crawl, its future is returned and no second crawl starts.
        """
        with self._lock:
            active = self._active.get(project_id)
            if active is not None and not active.done():
                logger.info("Crawl already active for project %s", project_id)
                return active
            self.get_project(project_id)
            future = self._executor.submit(
                self.crawl, project_id, status_callback, results_callback, cancel_token
            )
            self._active[project_id] = future
            future.add_done_callback(lambda f: self._forget(project_id, f))
            return future

    def _forget(self, project_id: str, future: Future) -> None:
        with self._lock:
            if self._active.get(project_id) is future:
                del self._active[project_id]

    def crawl(
        self,
        project_id: str,
        status_callback: Optional[StatusCallback] = None,
        results_callback: Optional[ResultsCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> list[DiscoveredUrl]:
        """
        Crawl a project to its depth and page budget. Loads prior results first and only
        emits URLs not already recorded. Returns prior and new records together.
        """
        project = self.get_project(project_id)
        run = _CrawlRun(self, project, status_callback, results_callback, cancel_token)
        return run.execute()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # Fetching (called from worker threads)

    def _client(self) -> httpx.Client:
        return build_client(
            self.limits.request_timeout,
            transport=self._transport,
            user_agent=self.limits.user_agent,
        )

    def _get_with_retry(
        self, client: httpx.Client, url: str, cancel_token: Optional[CancellationToken]
    ) -> tuple[httpx.Response, str]:
        """GET url, reading the body only for HTML/XML. Transport errors are retried."""
        policy = self.config.retry_policy

        def _cancelled(retry_state) -> bool:
            return is_cancelled(cancel_token)

        retrying = Retrying(
            stop=stop_any(stop_after_attempt(policy.max_attempts), _cancelled),
            wait=wait_exponential(multiplier=policy.backoff_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            sleep=cancel_token.wait if cancel_token is not None else _sleep,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                with client.stream("GET", url) as r:
                    content_type = r.headers.get("content-type", "").lower()
                    body = ""
                    if any(t in content_type for t in ("html", "xml", "text/plain")):
                        r.read()
                        body = r.text
                    return r, body
        raise RuntimeError("unreachable")

    def _visit(
        self,
        client: httpx.Client,
        entry: FrontierEntry,
        max_depth: int,
        allowed_hosts: set[str],
        cancel_token: Optional[CancellationToken],
    ) -> Optional[_PageOutcome]:
        """Fetch one page and extract its links. None when cancelled before the fetch finished."""
        if is_cancelled(cancel_token):
            return None
        should_fetch = entry.depth == 0 or (
            entry.depth < max_depth and detect_asset_type(entry.url) in _FETCHABLE_TYPES
        )
        if not should_fetch:
            return _PageOutcome()
        try:
            response, body = self._get_with_retry(client, entry.url, cancel_token)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            if is_cancelled(cancel_token):
                # Stopped while retrying; the page stays pending
                logger.debug("Fetch of %s interrupted by cancellation: %s", entry.url, e)
                return None
            logger.warning("Fetch failed for %s: %s", entry.url, e)
            return _PageOutcome(fetched=True, error=str(e) or type(e).__name__)

        outcome = _PageOutcome(
            fetched=True,
            ok=200 <= response.status_code < 300,
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            final_url=str(response.url),
        )
        if not outcome.ok:
            outcome.error = f"HTTP {response.status_code}"
            return outcome
        if "html" not in outcome.content_type.lower() or not body:
            return outcome

        try:
            soup = BeautifulSoup(body, "lxml")
            if soup.title and soup.title.string:
                outcome.title = soup.title.string.strip()
            elif soup.find("h1"):
                outcome.title = soup.find("h1").get_text(strip=True)
            if entry.depth < max_depth:
                outcome.links = self._extract_links(soup, outcome.final_url or entry.url, allowed_hosts)
        except Exception as e:
            logger.warning("Failed to parse %s: %s", entry.url, e)
        return outcome

    def _extract_links(self, soup: BeautifulSoup, page_url: str, allowed_hosts: set[str]) -> list[str]:
        links = []
        for a in soup.find_all("a", href=True):
            href = a["href"].strip()
            if not href or href.startswith(("#", "mailto:", "javascript:", "tel:")):
                continue
            try:
                norm = normalize_url(href, page_url)
            except ValueError:
                continue
            if self.accepts(norm, allowed_hosts):
                links.append(norm)
        return links

    def accepts(self, url: str, allowed_hosts: set[str]) -> bool:
        """In scope: http(s), allowed host, not excluded."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False
        if allowed_hosts and _bare_host(parsed.hostname) not in allowed_hosts:
            return False
        return not any(p.search(url) for p in self._exclude)

    def _discover_sitemaps(
        self,
        client: httpx.Client,
        seed_url: str,
        cancel_token: Optional[CancellationToken],
    ) -> Iterable[tuple[str, str]]:
        """Yield (page_url, sitemap_url) from robots.txt sitemaps or well-known locations."""
        parsed = urlparse(seed_url)
        root = f"{parsed.scheme}://{parsed.netloc}"
        pending: list[str] = []
        try:
            r = client.get(f"{root}/robots.txt")
            if r.status_code == 200:
                for line in r.text.splitlines():
                    if line.lower().startswith("sitemap:"):
                        pending.append(line.split(":", 1)[1].strip())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("No robots.txt for %s: %s", root, e)

        probing_known = not pending
        known = [f"{root}/{name}" for name in KNOWN_SITEMAPS]
        if probing_known:
            pending.append(known.pop(0))

        processed: set[str] = set()
        while pending and len(processed) < MAX_SITEMAP_DOCUMENTS:
            if is_cancelled(cancel_token):
                return
            sitemap_url = pending.pop(0)
            if sitemap_url in processed:
                continue
            processed.add(sitemap_url)
            try:
                r = client.get(sitemap_url)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.debug("Sitemap fetch failed for %s: %s", sitemap_url, e)
                r = None
            text = r.text if r is not None and r.status_code == 200 else ""
            head = text.lstrip()[:200].lower()
            if not text or not ("xml" in r.headers.get("content-type", "") or head.startswith(("<?xml", "<urlset", "<sitemapindex"))):
                if probing_known and known and not pending:
                    pending.append(known.pop(0))
                continue

            soup = BeautifulSoup(text, "xml")
            sitemap_tags = soup.find_all("sitemap")
            if sitemap_tags:
                # Sitemap index - queue referenced sitemaps
                for sitemap in sitemap_tags:
                    loc = sitemap.find("loc")
                    if loc:
                        ref = loc.get_text(strip=True)
                        if ref not in processed:
                            pending.append(ref)
            else:
                for loc in soup.find_all("loc"):
                    yield loc.get_text(strip=True), sitemap_url
            # One well-known sitemap that parses is enough
            known.clear()


def _sleep(seconds: float) -> None:
    threading.Event().wait(seconds)


class _CrawlRun:
    """State of a single crawl: dedup set, frontier and emitted records."""

    def __init__(
        self,
        engine: DiscoveryEngine,
        project: DiscoveryProject,
        status_callback: Optional[StatusCallback],
        results_callback: Optional[ResultsCallback],
        cancel_token: Optional[CancellationToken],
    ):
        self.engine = engine
        self.project = project
        self.storage = engine.storage
        self.limits = engine.limits
        self.status_callback = status_callback
        self.results_callback = results_callback
        self.cancel_token = cancel_token

        self.max_depth = project.crawl_depth
        self.max_pages = project.max_pages
        seed_host = urlparse(project.seed_url).hostname or ""
        self.allowed_hosts = {_bare_host(h) for h in (engine.limits.allowed_domains or [seed_host]) if h}

        self.recorded: dict[str, DiscoveredUrl] = {}
        self.seen: set[str] = set()
        self.new: list[DiscoveredUrl] = []
        self.pending: list[DiscoveredUrl] = []
        self.frontier = _Frontier(_compile_patterns(project.url_patterns))
        self._since_checkpoint = 0

    def notify(self, message: str) -> None:
        logger.info("[%s] %s", self.project.id, message)
        if self.status_callback:
            try:
                self.status_callback(message)
            except Exception:
                logger.warning("Status callback failed", exc_info=True)

    def cancelled(self) -> bool:
        return is_cancelled(self.cancel_token)

    def budget_left(self) -> int:
        return self.max_pages - len(self.seen)

    def execute(self) -> list[DiscoveredUrl]:
        project = self.project
        prior = self.engine.get_crawl_results(project.id)
        for rec in prior:
            self.recorded[rec.key] = rec
            self.seen.add(rec.key)
        saved_frontier = self.storage.load(project.id, FRONTIER_CATEGORY, list[FrontierEntry]) or []

        project.set_status(ProjectStatus.CRAWLING)
        self.engine.save_project(project)

        try:
            with self.engine._client() as client, ThreadPoolExecutor(
                max_workers=self.limits.fetch_workers, thread_name_prefix=f"fetch-{project.id[:8]}"
            ) as workers:
                if saved_frontier:
                    for entry in saved_frontier:
                        key = dedup_key(entry.url)
                        if key not in self.recorded:
                            self.seen.add(key)
                            self.frontier.push(entry)
                    self.notify(
                        f"Resuming crawl of {project.seed_url}: {len(prior)} known URLs, "
                        f"{len(self.frontier)} pages pending"
                    )
                else:
                    if prior:
                        self.notify(f"Restarting crawl of {project.seed_url} with {len(prior)} known URLs")
                    else:
                        self.notify(f"Starting crawl of {project.seed_url} (depth {self.max_depth}, max {self.max_pages} URLs)")
                    if not self._visit_seed(client):
                        return []
                # Sitemap entries already recorded or queued are skipped by the dedup set
                if self.limits.use_sitemap and self.max_depth >= 1 and not self.cancelled():
                    self._add_sitemap_urls(client)

                self._drain(client, workers)
        except Exception as e:
            logger.exception("Crawl failed for project %s", project.id)
            self._flush()
            self.engine.save_results(project.id, list(self.recorded.values()))
            self.engine._save_frontier(project.id, self.frontier.entries())
            project.set_status(f"{ProjectStatus.FAILED}: {e}")
            self.engine.save_project(project)
            raise

        self._flush()
        results = self.engine.save_results(project.id, list(self.recorded.values()))
        if self.cancelled():
            self.engine._save_frontier(project.id, self.frontier.entries())
            project.set_status(ProjectStatus.STOPPED)
            self.notify(f"Crawl stopped: {len(results)} URLs recorded ({len(self.new)} new)")
        else:
            self.engine._save_frontier(project.id, [])
            project.set_status(ProjectStatus.COMPLETED)
            self.notify(f"Crawl completed: {len(results)} URLs recorded ({len(self.new)} new)")
        self.engine.save_project(project)
        return results

    def _visit_seed(self, client: httpx.Client) -> bool:
        """Fetch the seed. False when a fresh crawl cannot reach it."""
        project = self.project
        entry = FrontierEntry(url=normalize_url(project.seed_url), depth=0)
        self.seen.add(dedup_key(entry.url))
        outcome = self.engine._visit(client, entry, self.max_depth, self.allowed_hosts, self.cancel_token)
        if outcome is None:
            self.frontier.push(entry)
            return True
        if not outcome.ok:
            if not self.recorded:
                message = f"Could not reach seed URL {entry.url}: {outcome.error}"
                logger.warning(message)
                project.set_status(f"{ProjectStatus.FAILED}: {message}")
                self.engine.save_project(project)
                self.notify(f"Crawl failed: {message}")
                return False
            logger.warning("Seed %s unreachable on resume: %s", entry.url, outcome.error)
            return True
        if outcome.final_url:
            final_host = urlparse(outcome.final_url).hostname
            if final_host and not self.limits.allowed_domains:
                self.allowed_hosts.add(_bare_host(final_host))
        self._accept(entry, outcome)
        return True

    def _add_sitemap_urls(self, client: httpx.Client) -> None:
        added = 0
        for page_url, sitemap_url in self.engine._discover_sitemaps(client, self.project.seed_url, self.cancel_token):
            if self.budget_left() <= 0:
                break
            try:
                norm = normalize_url(page_url)
            except ValueError:
                continue
            if not self.engine.accepts(norm, self.allowed_hosts):
                continue
            key = url_key(norm)
            if key in self.seen:
                continue
            self.seen.add(key)
            self.frontier.push(FrontierEntry(url=norm, depth=1, discovered_from=sitemap_url))
            added += 1
        if added:
            self.notify(f"Found {added} URLs in sitemaps")

    def _drain(self, client: httpx.Client, workers: ThreadPoolExecutor) -> None:
        batch_size = self.limits.fetch_workers
        while len(self.frontier) and not self.cancelled():
            batch = []
            while len(batch) < batch_size:
                entry = self.frontier.pop()
                if entry is None:
                    break
                batch.append(entry)

            outcomes = list(
                workers.map(
                    lambda e: self.engine._visit(client, e, self.max_depth, self.allowed_hosts, self.cancel_token),
                    batch,
                )
            )
            for entry, outcome in zip(batch, outcomes):
                if outcome is None:
                    # Cancelled before fetching; keep it for the next run
                    self.frontier.push(entry)
                    continue
                self._accept(entry, outcome)

    def _accept(self, entry: FrontierEntry, outcome: _PageOutcome) -> None:
        """Record a visited URL and queue its unseen links. Coordinator thread only."""
        key = dedup_key(entry.url)
        if key not in self.recorded:
            metadata: dict = {}
            if outcome.fetched:
                metadata["status_code"] = outcome.status_code
                if outcome.content_type:
                    metadata["content_type"] = outcome.content_type
                if outcome.error:
                    metadata["fetch_error"] = outcome.error
            record = DiscoveredUrl(
                url=entry.url,
                title=outcome.title or display_name_from_url(entry.url),
                status=DiscoveryStatus.OK if outcome.ok else DiscoveryStatus.DISCOVERED,
                depth=entry.depth,
                discovered_from=entry.discovered_from,
                metadata=metadata,
            )
            self.recorded[key] = record
            self.new.append(record)
            self.pending.append(record)
            self._since_checkpoint += 1

        for link in outcome.links:
            if self.budget_left() <= 0:
                break
            link_key = url_key(link)
            if link_key in self.seen:
                continue
            self.seen.add(link_key)
            self.frontier.push(FrontierEntry(url=link, depth=entry.depth + 1, discovered_from=entry.url))

        if len(self.pending) >= self.limits.results_batch_size:
            self._flush()
            self.notify(f"Discovered {len(self.recorded)} URLs, {len(self.frontier)} pending")
        if self._since_checkpoint >= self.limits.checkpoint_interval:
            self._checkpoint()

    def _flush(self) -> None:
        if not self.pending:
            return
        batch, self.pending = self.pending, []
        if self.results_callback:
            self.results_callback(batch)

    def _checkpoint(self) -> None:
        self._since_checkpoint = 0
        self.engine.save_results(self.project.id, list(self.recorded.values()))
        self.engine._save_frontier(self.project.id, self.frontier.entries())
        logger.debug("Checkpointed project %s at %d URLs", self.project.id, len(self.recorded))
