"""Render tool - render SPA pages with headless browser."""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    """Result from render_tool."""

    html: str
    final_url: str
    error: str | None = None


def render_tool(url: str, timeout_ms: int = 15000, user_agent: Optional[str] = None) -> RenderResult:
    """
    Render page with Playwright (headless Chromium).
    Used during extraction when the HTTP body is sparse or belongs to a client-side app.
    """
    try:
        from playwright.sync_api import sync_playwright
    except ImportError:
        return RenderResult(
            html="",
            final_url=url,
            error="playwright not installed. Run: pip install 'catalog-processing[render]' && playwright install chromium",
        )

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                context = browser.new_context(user_agent=user_agent) if user_agent else browser.new_context()
                page = context.new_page()
                page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                return RenderResult(html=page.content(), final_url=page.url, error=None)
            finally:
                browser.close()
    except Exception as e:
        logger.warning("Render failed for %s: %s", url, e)
        return RenderResult(html="", final_url=url, error=str(e))
