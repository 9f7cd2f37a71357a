"""Fetch tool - retrieve pages via HTTP."""

from dataclasses import dataclass
from typing import Optional

import httpx


@dataclass
class FetchResult:
    """Result from fetch_tool."""

    final_url: str
    http_status: int
    content_type: str
    html: str
    error: str | None = None


def build_client(
    timeout: float,
    transport: Optional[httpx.BaseTransport] = None,
    user_agent: Optional[str] = None,
    connect_timeout: Optional[float] = None,
) -> httpx.Client:
    """Client with redirects followed and proxy env ignored."""
    headers = {"User-Agent": user_agent} if user_agent else None
    return httpx.Client(
        timeout=httpx.Timeout(timeout, connect=connect_timeout or timeout),
        follow_redirects=True,
        trust_env=False,
        headers=headers,
        transport=transport,
    )


def fetch_tool(
    url: str,
    timeout: float = 30,
    client: Optional[httpx.Client] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> FetchResult:
    """
    Fetch HTML from URL.
    Returns final_url, http_status, content_type, html, error. Never raises for transport errors.
    """
    try:
        if client is not None:
            response = client.get(url)
        else:
            with build_client(timeout, transport=transport) as own_client:
                response = own_client.get(url)
        return FetchResult(
            final_url=str(response.url),
            http_status=response.status_code,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            html=response.text,
            error=None,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return FetchResult(
            final_url=url,
            http_status=0,
            content_type="",
            html="",
            error=str(e) or type(e).__name__,
        )
