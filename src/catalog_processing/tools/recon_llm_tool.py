"""Recon LLM tool - ask an LLM for crawl-tuning hints about a seed site."""

import json
import logging
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from openai import OpenAI

from ..config.loader import Config
from ..models.recon import ReconnaissanceHints
from .fetch_tool import build_client
from .llm_tool import build_openai_client, chat_json, get_api_key

logger = logging.getLogger(__name__)

MAX_RECOMMENDED_DEPTH = 10
MAX_SAMPLE_LINKS = 60


SYSTEM_PROMPT = """You are a reconnaissance assistant for a web catalog crawler.
Given a summary of a website's home page, estimate how large the site is and how to crawl it.

Fields:
- estimated_url_count: rough number of distinct content URLs on the site
- recommended_crawl_depth: link-follow depth from the seed that reaches most content (0-10)
- url_patterns: regular expressions for URL paths that lead to catalog-worthy content (articles, datasets, documents, media)
- site_structure: one short phrase (e.g. "news portal", "data archive", "blog", "documentation")
- rationale: one or two sentences

CRITICAL: Return ONLY a valid JSON object. No markdown, no code blocks, no extra text."""

USER_PROMPT_TEMPLATE = """Seed URL: {seed_url}
Page title: {title}
Sitemap found: {has_sitemap}
Internal links on the page: {link_count}
Sample of internal link paths:
{sample}

Return ONLY valid JSON:
{{
  "estimated_url_count": 0,
  "recommended_crawl_depth": 0,
  "url_patterns": ["/news/", "/data/.*\\\\.csv$"],
  "site_structure": "",
  "rationale": ""
}}"""


def _as_int(value: Any, lo: int = 0, hi: Optional[int] = None) -> Optional[int]:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    if n < lo:
        return None
    return min(n, hi) if hi is not None else n


class ReconnaissanceAdvisor:
    """
    Optional black-box advisor. analyze() never raises: a disabled advisor, missing key,
    unreachable seed, API failure or unreadable answer all give empty hints with a rationale.
    """

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.BaseTransport] = None,
        client: Optional[OpenAI] = None,
    ):
        self.config = config
        self.settings = config.advisor
        self._transport = transport
        self._client = client

    def analyze(self, seed_url: str) -> ReconnaissanceHints:
        if not self.settings.enabled:
            return ReconnaissanceHints(rationale="Advisor disabled")
        api_key = get_api_key(self.settings)
        if self._client is None and not api_key:
            return ReconnaissanceHints(rationale="No LLM API key configured")

        try:
            survey = self._survey(seed_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Reconnaissance could not fetch %s: %s", seed_url, e)
            return ReconnaissanceHints(rationale=f"Seed not reachable: {e}")

        user_prompt = USER_PROMPT_TEMPLATE.format(
            seed_url=seed_url,
            title=survey["title"] or "(none)",
            has_sitemap=survey["has_sitemap"],
            link_count=survey["link_count"],
            sample=json.dumps(survey["sample"], ensure_ascii=False, indent=2),
        )
        try:
            client = self._client or build_openai_client(self.settings, api_key)
            data = chat_json(client, self.settings, SYSTEM_PROMPT, user_prompt, subject=seed_url)
        except Exception as e:
            logger.error("Reconnaissance LLM error for %s: %s: %s", seed_url, type(e).__name__, e)
            return ReconnaissanceHints(
                has_sitemap=survey["has_sitemap"],
                rationale=f"LLM error ({type(e).__name__}): {e}",
            )
        return self._to_hints(data, survey)

    def _survey(self, seed_url: str) -> dict[str, Any]:
        """Summarize the seed page: title, internal link sample, sitemap presence."""
        parsed = urlparse(seed_url)
        host = (parsed.hostname or "").lower()
        with build_client(
            self.settings.timeout,
            transport=self._transport,
            user_agent=self.config.crawl_limits.user_agent,
        ) as client:
            r = client.get(seed_url)
            soup = BeautifulSoup(r.text, "lxml")
            paths: list[str] = []
            for a in soup.find_all("a", href=True):
                link = urlparse(urljoin(str(r.url), a["href"].strip()))
                if (link.hostname or "").lower().removeprefix("www.") == host.removeprefix("www.") and link.path:
                    paths.append(link.path)
            try:
                sm = client.head(f"{parsed.scheme}://{parsed.netloc}/sitemap.xml")
                has_sitemap = sm.status_code == 200
            except httpx.HTTPError:
                has_sitemap = False

        unique = list(dict.fromkeys(paths))
        return {
            "title": soup.title.string.strip() if soup.title and soup.title.string else "",
            "has_sitemap": has_sitemap,
            "link_count": len(unique),
            "sample": unique[:MAX_SAMPLE_LINKS],
        }

    def _to_hints(self, data: dict[str, Any], survey: dict[str, Any]) -> ReconnaissanceHints:
        patterns = data.get("url_patterns") or []
        if isinstance(patterns, str):
            patterns = [patterns]
        return ReconnaissanceHints(
            estimated_url_count=_as_int(data.get("estimated_url_count")),
            recommended_crawl_depth=_as_int(data.get("recommended_crawl_depth"), hi=MAX_RECOMMENDED_DEPTH),
            url_patterns=[str(p) for p in patterns if p],
            site_structure=str(data["site_structure"]) if data.get("site_structure") else None,
            has_sitemap=survey["has_sitemap"],
            rationale=str(data.get("rationale", "")),
        )
