"""Extracted page package - compact representation of a fetched HTML asset."""

from typing import Optional

from pydantic import BaseModel, Field


class PageMeta(BaseModel):
    """Meta information extracted from page."""

    title: Optional[str] = None
    description: Optional[str] = None
    h1: Optional[str] = None
    canonical: Optional[str] = None
    robots: Optional[str] = None
    language: Optional[str] = None


class PageContent(BaseModel):
    """Content extracted from page."""

    text_excerpt: str = Field(default="", max_length=20000)
    headings: list[str] = Field(default_factory=list)
    key_paragraphs: list[str] = Field(default_factory=list, max_length=7)


class PageSignals(BaseModel):
    """Structural signals used by enhancement."""

    word_count: int = 0
    links_count: int = 0
    images_count: int = 0
    tables_count: int = 0
    lists_count: int = 0
    schema_types: list[str] = Field(default_factory=list)
    is_article_like: bool = False
    is_doc_like: bool = False
    has_data_links: bool = False


class ExtractedPage(BaseModel):
    """Metadata extracted from one HTML asset during the extraction phase."""

    url: str = ""
    final_url: str = ""
    status: Optional[int] = None
    fetch_mode: str = Field(default="http", pattern="^(http|render)$")
    content_type: Optional[str] = None
    content_hash: Optional[str] = None
    error: Optional[str] = None

    meta: PageMeta = Field(default_factory=PageMeta)
    content: PageContent = Field(default_factory=PageContent)
    signals: PageSignals = Field(default_factory=PageSignals)

    def to_llm_input(self) -> dict:
        """Serialize for LLM consumption."""
        return {
            "url": self.url,
            "final_url": self.final_url,
            "content_type": self.content_type,
            "meta": self.meta.model_dump(),
            "content": {
                "text_excerpt": self.content.text_excerpt[:2000],  # Limit for context
                "headings": self.content.headings[:20],
                "key_paragraphs": self.content.key_paragraphs,
            },
            "signals": self.signals.model_dump(),
        }
