"""Shared fixtures: a synthetic website behind httpx.MockTransport, temp storage and a stub advisor."""

import threading
import time
from typing import Optional

import httpx
import pytest

from catalog_processing.config.loader import Config
from catalog_processing.models.recon import ReconnaissanceHints
from catalog_processing.tools.crawl_tool import DiscoveryEngine
from catalog_processing.tools.storage_tool import StorageGateway
from catalog_processing.tools.validate_tool import ValidationEngine

HTML = "text/html; charset=utf-8"


def page(title: str, *links: str, body: str = "") -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return f"<html><head><title>{title}</title></head><body><h1>{title}</h1>{body}{anchors}</body></html>"


class SyntheticSite:
    """In-memory web served through httpx.MockTransport; unknown paths answer 404."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.routes: dict[tuple[str, str], tuple[int, str, bytes]] = {}
        self.down_hosts: set[str] = set()
        self.requests: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def add(self, url: str, body: str | bytes = b"", content_type: str = HTML, status: int = 200) -> None:
        u = httpx.URL(url)
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[(u.host, u.path)] = (status, content_type, data)

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append((request.method, str(request.url)))
        if self.latency:
            time.sleep(self.latency)
        if request.url.host in self.down_hosts:
            raise httpx.ConnectError(f"Name or service not known: {request.url.host}", request=request)
        route = self.routes.get((request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, headers={"content-type": "text/plain"}, text="not found")
        status, content_type, data = route
        content = b"" if request.method == "HEAD" else data
        return httpx.Response(status, headers={"content-type": content_type}, content=content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fetched(self, method: str = "GET") -> list[str]:
        with self._lock:
            return [url for m, url in self.requests if m == method]


SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/about</loc></url>
  <url><loc>https://example.com/sitemap-only-page</loc></url>
</urlset>"""

NEWS_ARTICLE = """<html lang="en"><head><title>Launch of New Probe</title>
<meta name="description" content="The agency launched a new deep space probe.">
<link rel="canonical" href="https://example.com/news/2024/01/launch-of-new-probe">
<script type="application/ld+json">{"@type": "NewsArticle", "headline": "Launch"}</script>
</head><body><article><h1>Launch of New Probe</h1>
<p>The probe lifted off this morning carrying instruments that will study the outer planets for a decade.</p>
<h2>Mission goals</h2><p>Scientists expect the first measurements to arrive within eighteen months of launch.</p>
<a href="/">Home</a></article></body></html>"""


def build_example_site(latency: float = 0.0) -> SyntheticSite:
    site = SyntheticSite(latency=latency)
    site.add(
        "https://example.com/",
        page(
            "Example Home",
            "/about",
            "/about/",
            "/news/2024/01/launch-of-new-probe",
            "/data/catalog.csv",
            "/images/galaxy.jpg",
            "/docs/manual.pdf",
            "/missing-page",
            "/wp-admin/",
            "https://other.org/page",
            "mailto:team@example.com",
            "#top",
        ),
    )
    site.add("https://example.com/about", page("About Us", "/team", "/", "/news/2024/01/launch-of-new-probe"))
    site.add("https://example.com/team", page("Team", "/careers"))
    site.add("https://example.com/careers", page("Careers"))
    site.add("https://example.com/news/2024/01/launch-of-new-probe", NEWS_ARTICLE)
    site.add("https://example.com/sitemap-only-page", page("Sitemap Only"))
    site.add("https://example.com/data/catalog.csv", "id,name\n1,probe\n", "text/csv")
    site.add("https://example.com/images/galaxy.jpg", b"\xff\xd8\xff", "image/jpeg")
    site.add("https://example.com/docs/manual.pdf", b"%PDF-1.4", "application/pdf")
    site.add("https://example.com/sitemap.xml", SITEMAP, "application/xml")
    site.add("https://other.org/page", page("Elsewhere"))
    return site


def build_wide_site(count: int, latency: float) -> SyntheticSite:
    """Seed linking to `count` leaf pages, each answering after `latency` seconds."""
    site = SyntheticSite(latency=latency)
    site.add("https://wide.example/", page("Wide", *(f"/item/{i}" for i in range(count))))
    for i in range(count):
        site.add(f"https://wide.example/item/{i}", page(f"Item {i}"))
    return site


class StubAdvisor:
    """Returns fixed hints and records the seeds it was asked about."""

    def __init__(self, hints: Optional[ReconnaissanceHints] = None):
        self.hints = hints or ReconnaissanceHints()
        self.calls: list[str] = []

    def analyze(self, seed_url: str) -> ReconnaissanceHints:
        self.calls.append(seed_url)
        return self.hints


@pytest.fixture
def config(tmp_path) -> Config:
    return Config.from_dict(
        {
            "storage": {"base_dir": str(tmp_path / "data")},
            "crawl_limits": {"fetch_workers": 2, "results_batch_size": 3, "checkpoint_interval": 50},
            "validation": {"concurrency": 4, "progress_interval": 10},
            "advisor": {"enabled": False},
            "retry_policy": {"max_attempts": 1, "backoff_seconds": 0},
            "orchestrator": {"max_concurrent_jobs": 2, "shutdown_grace_seconds": 0.2},
        }
    )


@pytest.fixture
def storage(config) -> StorageGateway:
    return StorageGateway(config.storage.base_dir)


@pytest.fixture
def site() -> SyntheticSite:
    return build_example_site()


@pytest.fixture
def discovery(storage, config, site):
    engine = DiscoveryEngine(storage, config, transport=site.transport())
    yield engine
    engine.shutdown()


@pytest.fixture
def validator(config, site):
    engine = ValidationEngine(config, transport=site.transport())
    yield engine
    engine.close()


@pytest.fixture
def stub_advisor() -> StubAdvisor:
    return StubAdvisor()
