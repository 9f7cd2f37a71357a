"""Tools for the catalog processing system. Each one owns a single external capability."""

from .aggregate_tool import ResultAggregator
from .crawl_tool import DiscoveryEngine
from .fetch_tool import fetch_tool
from .render_tool import render_tool
from .extract_tool import extract_tool
from .classify_llm_tool import classify_llm_tool
from .recon_llm_tool import ReconnaissanceAdvisor
from .validate_tool import ValidationEngine
from .storage_tool import StorageGateway

__all__ = [
    "ResultAggregator",
    "DiscoveryEngine",
    "fetch_tool",
    "render_tool",
    "extract_tool",
    "classify_llm_tool",
    "ReconnaissanceAdvisor",
    "ValidationEngine",
    "StorageGateway",
]
