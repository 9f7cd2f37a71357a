"""Classify LLM tool - assign a catalog category, summary and keywords to an asset."""

import json
import logging
import re
from collections import Counter
from typing import Optional
from urllib.parse import urlparse

from openai import OpenAI

from ..config.loader import Config
from ..models.classification_result import ALLOWED_CATEGORIES, EnhancedAsset
from ..models.page_package import ExtractedPage
from ..models.validation_result import AssetType
from .llm_tool import build_openai_client, chat_json, get_api_key

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 0.5
MAX_KEYWORDS = 8

SYSTEM_PROMPT = """You are a cataloguer for a web archive of articles, documents, media and datasets.
Assign each page exactly one category:
- NEWS: news items, press releases, dated announcements
- RESEARCH: papers, reports, studies, technical analysis
- REFERENCE: documentation, manuals, glossaries, encyclopedic pages
- MEDIA: galleries, image/video/audio collections
- DATASET: data catalogs, downloadable data files and their landing pages
- PRODUCT: products, services, missions or programs being described or offered
- NAVIGATION: index pages, hubs, listings whose main purpose is linking elsewhere
- OTHER: anything that does not clearly fit above

Write a one or two sentence summary and up to 8 short keywords, using the page content, not just the URL.

CRITICAL: You must return ONLY valid JSON. Do not include markdown code blocks or any text before or after the JSON."""

USER_PROMPT_TEMPLATE = """Allowed categories: {allowed}
Asset type detected during validation: {asset_type}

Page:
{page}

Return ONLY valid JSON:
{{
  "category": "CATEGORY",
  "confidence": 0.0-1.0,
  "summary": "...",
  "keywords": ["..."],
  "needs_review": false
}}"""

_STOPWORDS = frozenset(
    """a an and are as at be by for from has have in is it its of on or our that the this to was were
    will with you your we not but all can more about home page new see also other""".split()
)
_NEWS_PATH_RE = re.compile(r"/(news|press|press-releases?|announcements?|events?)/|/\d{4}/\d{2}/", re.I)
_RESEARCH_RE = re.compile(r"\b(research|study|studies|paper|report|analysis|journal|abstract)\b", re.I)


def _keywords(*texts: Optional[str]) -> list[str]:
    words = re.findall(r"[A-Za-z][A-Za-z\-]{2,}", " ".join(t for t in texts if t).lower())
    counts = Counter(w for w in words if w not in _STOPWORDS)
    return [w for w, _ in counts.most_common(MAX_KEYWORDS)]


def classify_heuristic(
    url: str,
    asset_type: AssetType,
    page: Optional[ExtractedPage] = None,
    title: str = "",
) -> EnhancedAsset:
    """Rule-based category from asset type, URL shape and page signals."""
    path = urlparse(url).path
    text = page.content.text_excerpt if page else ""
    title = (page.meta.title if page and page.meta.title else title) or ""

    if asset_type in (AssetType.IMAGE, AssetType.VIDEO, AssetType.AUDIO):
        category, confidence = "MEDIA", 0.8
    elif asset_type == AssetType.DATASET:
        category, confidence = "DATASET", 0.8
    elif asset_type in (AssetType.PDF, AssetType.DOCUMENT):
        category = "RESEARCH" if _RESEARCH_RE.search(f"{title} {path}") else "REFERENCE"
        confidence = 0.6
    elif _NEWS_PATH_RE.search(path + "/"):
        category, confidence = "NEWS", 0.7
    elif page is not None and page.signals.has_data_links:
        category, confidence = "DATASET", 0.55
    elif page is not None and page.signals.is_doc_like:
        category, confidence = "REFERENCE", 0.55
    elif page is not None and page.signals.word_count < 150 and page.signals.links_count > 30:
        category, confidence = "NAVIGATION", 0.55
    elif asset_type == AssetType.ARTICLE or (page is not None and page.signals.is_article_like):
        category = "RESEARCH" if _RESEARCH_RE.search(text[:2000]) else "NEWS"
        confidence = 0.5
    else:
        category, confidence = "OTHER", 0.3

    summary = ""
    if page is not None:
        summary = page.meta.description or (page.content.key_paragraphs[0] if page.content.key_paragraphs else "")
    headings = " ".join(page.content.headings) if page else ""
    return EnhancedAsset(
        url=url,
        asset_type=asset_type,
        category=category,
        title=title,
        summary=summary[:280],
        keywords=_keywords(title, headings, path.replace("/", " ").replace("-", " ")),
        confidence=confidence,
        source="heuristic",
        needs_review=confidence < REVIEW_THRESHOLD,
    )


def classify_llm_tool(
    page: ExtractedPage,
    asset_type: AssetType,
    config: Config,
    client: Optional[OpenAI] = None,
) -> EnhancedAsset:
    """
    Ask the configured LLM for category, summary and keywords.
    Falls back to classify_heuristic (flagged for review) when no key is set or the call fails.
    """
    settings = config.advisor
    api_key = get_api_key(settings)
    if client is None and not api_key:
        asset = classify_heuristic(page.url, asset_type, page)
        asset.needs_review = True
        return asset

    user_prompt = USER_PROMPT_TEMPLATE.format(
        allowed=", ".join(sorted(ALLOWED_CATEGORIES)),
        asset_type=asset_type.value,
        page=json.dumps(page.to_llm_input(), ensure_ascii=False, indent=2),
    )
    try:
        client = client or build_openai_client(settings, api_key)
        data = chat_json(client, settings, SYSTEM_PROMPT, user_prompt, subject=page.url)
    except Exception as e:
        logger.error("LLM classification error for %s: %s: %s", page.url, type(e).__name__, e)
        asset = classify_heuristic(page.url, asset_type, page)
        asset.needs_review = True
        return asset

    category = str(data.get("category", "OTHER")).upper().strip()
    if category not in ALLOWED_CATEGORIES:
        logger.warning("Unknown category %r for %s, using OTHER", category, page.url)
        category = "OTHER"
    try:
        confidence = max(0.0, min(1.0, float(data.get("confidence", 0.0))))
    except (TypeError, ValueError):
        confidence = 0.0
    keywords = data.get("keywords") or []
    if isinstance(keywords, str):
        keywords = [k.strip() for k in keywords.split(",")]

    return EnhancedAsset(
        url=page.url,
        asset_type=asset_type,
        category=category,
        title=page.meta.title or "",
        summary=str(data.get("summary", ""))[:1000],
        keywords=[str(k) for k in keywords if k][:MAX_KEYWORDS],
        confidence=confidence,
        source="llm",
        needs_review=bool(data.get("needs_review", False)) or confidence < REVIEW_THRESHOLD,
        model_version=settings.model,
    )
