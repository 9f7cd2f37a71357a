"""Configuration loader for catalog processing system."""

import json
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from ..models.job import JobConfiguration


DEFAULT_EXCLUDE_PATTERNS = [
    r"/wp-admin(/|$)",
    r"/wp-login\.php",
    r"/wp-includes/",
    r"/feed/?$",
    r"/xmlrpc\.php",
]


class StorageConfig(BaseModel):
    """Where records are persisted."""

    base_dir: str = Field(default="./data")


class CrawlLimits(BaseModel):
    """Crawl limits and discovery engine tuning."""

    max_depth: int = Field(default=3, ge=0)
    max_urls: int = Field(default=1000, ge=1)
    fetch_workers: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=15.0, gt=0)
    results_batch_size: int = Field(default=25, ge=1)
    checkpoint_interval: int = Field(default=500, ge=1)
    storage_chunk_size: int = Field(default=5000, ge=1)
    use_sitemap: bool = Field(default=True)
    allowed_domains: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    user_agent: str = Field(default="catalog-processing/0.1 (+https://example.invalid/bot)")


class ValidationConfig(BaseModel):
    """URL validation engine settings."""

    concurrency: int = Field(default=10, ge=1)
    connect_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=10.0, gt=0)
    progress_interval: int = Field(default=100, ge=1)
    head_first: bool = Field(default=True)


class AdvisorConfig(BaseModel):
    """LLM provider configuration for reconnaissance and AI enhancement."""

    enabled: bool = Field(default=True)
    # Only the OpenAI chat API is wired up; other providers fail at load time
    provider: Literal["openai"] = Field(default="openai")
    model: str = Field(default="gpt-4o-mini")
    api_key_env: str = Field(default="OPENAI_API_KEY")
    temperature: float = Field(default=0.0, ge=0, le=2)
    max_tokens: int = Field(default=1024, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    allow_expansion: bool = Field(default=False)


class RenderPolicy(BaseModel):
    """When extraction invokes render_tool."""

    enabled: bool = Field(default=False)
    min_text_chars: int = Field(default=300)
    spa_markers: list[str] = Field(
        default_factory=lambda: ["__NEXT_DATA__", "data-reactroot", "__NUXT__", "ng-version"]
    )
    timeout_ms: int = Field(default=15000, ge=1000)


class RetryPolicy(BaseModel):
    """Retry configuration for transient failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0)


class OrchestratorConfig(BaseModel):
    """Job orchestrator settings."""

    max_concurrent_jobs: int = Field(default=4, ge=1)
    shutdown_grace_seconds: float = Field(default=0.5, ge=0)
    text_excerpt_max_length: int = Field(default=5000, ge=100)


class Config(BaseModel):
    """Full system configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    crawl_limits: CrawlLimits = Field(default_factory=CrawlLimits)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    advisor: AdvisorConfig = Field(default_factory=AdvisorConfig)
    render_policy: RenderPolicy = Field(default_factory=RenderPolicy)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    job_defaults: JobConfiguration = Field(default_factory=JobConfiguration)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Config":
        """Load config from dictionary."""
        return cls(**(data or {}))


def load_config(path: str | Path) -> Config:
    """Load configuration from file (YAML or JSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    return Config.from_dict(data)
