"""Extract tool - build an ExtractedPage from fetched HTML."""

import hashlib
import json
import re

from bs4 import BeautifulSoup

from ..config.loader import Config, RenderPolicy
from ..models.page_package import ExtractedPage, PageContent, PageMeta, PageSignals

_DATA_LINK_RE = re.compile(r"\.(csv|tsv|json|xml|xlsx?|nc|hdf5?|h5|fits|parquet|geojson|zip)(\?|$)", re.I)
_DOC_URL_RE = re.compile(r"\.(pdf|docx?|pptx?|odt|rtf)(\?|$)|/(docs?|documentation|manual|reference)/", re.I)


def _extract_text(soup: BeautifulSoup, max_length: int = 5000) -> str:
    """Extract main text from body, stripped."""
    body = soup.find("body")
    if not body:
        return ""
    for tag in body.find_all(["script", "style", "nav", "footer", "noscript"]):
        tag.decompose()
    text = body.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+", " ", text)
    return text[:max_length]


def _key_paragraphs(soup: BeautifulSoup, max_count: int = 7) -> list[str]:
    """Extract most informative paragraphs (article/main content)."""
    paras: list[str] = []
    for tag in soup.find_all(["p", "article", "section"]):
        t = tag.get_text(separator=" ", strip=True)
        if len(t) > 80:
            paras.append(t[:500])
    return paras[:max_count]


def _schema_types(soup: BeautifulSoup) -> list[str]:
    """@type values declared in JSON-LD blocks."""
    found: list[str] = []
    for s in soup.find_all("script", type="application/ld+json"):
        if not s.string:
            continue
        try:
            data = json.loads(s.string)
        except json.JSONDecodeError:
            continue
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = data.get("@graph", [data])
        else:
            items = []
        for item in items:
            if not isinstance(item, dict):
                continue
            t = item.get("@type")
            for name in t if isinstance(t, list) else [t]:
                if isinstance(name, str) and name not in found:
                    found.append(name)
    return found


def needs_render(html: str, text: str, policy: RenderPolicy) -> bool:
    """Sparse text or client-side framework markers mean the HTTP body is not the real page."""
    if not policy.enabled:
        return False
    return len(text) < policy.min_text_chars or any(m in html for m in policy.spa_markers)


def visible_text(html: str, max_length: int = 5000) -> str:
    return _extract_text(BeautifulSoup(html, "lxml"), max_length)


def extract_tool(
    url: str,
    html: str,
    final_url: str,
    http_status: int,
    fetch_mode: str,
    content_type: str,
    config: Config,
) -> ExtractedPage:
    """
    Build an ExtractedPage from HTML.
    Extracts meta, main text, headings and structural signals.
    """
    soup = BeautifulSoup(html, "lxml")
    max_excerpt = config.orchestrator.text_excerpt_max_length

    headings = [h.get_text(strip=True) for h in soup.find_all(["h2", "h3"]) if h.get_text(strip=True)]
    key_paras = _key_paragraphs(soup)
    schema_types = _schema_types(soup)
    hrefs = [a["href"] for a in soup.find_all("a", href=True)]
    images = len(soup.find_all("img"))
    tables = len(soup.find_all("table"))
    lists = len(soup.find_all(["ul", "ol"]))
    has_article_tag = soup.find("article") is not None

    # Meta
    meta = PageMeta(title=soup.title.string.strip() if soup.title and soup.title.string else None)
    desc = soup.find("meta", attrs={"name": "description"}) or soup.find(
        "meta", attrs={"property": "og:description"}
    )
    if desc and desc.get("content"):
        meta.description = desc["content"].strip()
    h1_tag = soup.find("h1")
    if h1_tag:
        meta.h1 = h1_tag.get_text(strip=True)
    canon = soup.find("link", rel="canonical")
    if canon and canon.get("href"):
        meta.canonical = canon["href"]
    robots = soup.find("meta", attrs={"name": "robots"})
    if robots and robots.get("content"):
        meta.robots = robots["content"]
    html_tag = soup.find("html")
    if html_tag and html_tag.get("lang"):
        meta.language = html_tag["lang"]

    # Text last: _extract_text strips script/nav/footer from the tree
    text = _extract_text(soup, max_excerpt)

    content_hash = hashlib.sha256(html.encode("utf-8")).hexdigest()[:32]

    return ExtractedPage(
        url=url,
        final_url=final_url,
        status=http_status,
        fetch_mode=fetch_mode,
        content_type=content_type,
        content_hash=content_hash,
        meta=meta,
        content=PageContent(
            text_excerpt=text,
            headings=headings[:50],
            key_paragraphs=key_paras,
        ),
        signals=PageSignals(
            word_count=len(text.split()),
            links_count=len(hrefs),
            images_count=images,
            tables_count=tables,
            lists_count=lists,
            schema_types=schema_types,
            is_article_like=has_article_tag or any(t in ("Article", "NewsArticle", "BlogPosting") for t in schema_types),
            is_doc_like=bool(_DOC_URL_RE.search(url)) or "document" in (content_type or "").lower(),
            has_data_links=any(_DATA_LINK_RE.search(h) for h in hrefs),
        ),
    )
