"""LLM-backed tools with a fake OpenAI client: JSON parsing, reconnaissance and classification."""

from types import SimpleNamespace

import pytest

from catalog_processing.models.page_package import ExtractedPage, PageMeta
from catalog_processing.models.validation_result import AssetType
from catalog_processing.tools.classify_llm_tool import classify_llm_tool
from catalog_processing.tools.llm_tool import chat_json, parse_json_object
from catalog_processing.tools.recon_llm_tool import ReconnaissanceAdvisor


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def create(self, **params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=message, finish_reason="stop")],
            usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5),
        )


class FakeClient:
    def __init__(self, content=None, error=None):
        self.completions = FakeCompletions(content, error)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def advisor_config(config):
    config.advisor.enabled = True
    return config


def test_parse_json_object_strips_fences_and_prose():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_object('Here you go: {"a": {"b": 2}} hope it helps') == {"a": {"b": 2}}


@pytest.mark.parametrize("content", ["[1, 2]", "no json here", "{broken"])
def test_parse_json_object_rejects(content):
    with pytest.raises(ValueError):
        parse_json_object(content)


def test_chat_json_uses_completion_tokens_for_gpt5(advisor_config):
    advisor_config.advisor.model = "gpt-5-mini"
    client = FakeClient('{"ok": true}')

    assert chat_json(client, advisor_config.advisor, "sys", "user") == {"ok": True}
    params = client.completions.calls[0]
    assert params["max_completion_tokens"] == advisor_config.advisor.max_tokens
    assert "temperature" not in params


def test_chat_json_empty_response(advisor_config):
    with pytest.raises(ValueError, match="Empty LLM response"):
        chat_json(FakeClient(""), advisor_config.advisor, "sys", "user")


def test_advisor_disabled(config):
    hints = ReconnaissanceAdvisor(config, client=FakeClient("{}")).analyze("https://example.com")
    assert hints.is_empty()
    assert hints.rationale == "Advisor disabled"


def test_advisor_without_key(advisor_config, monkeypatch):
    monkeypatch.delenv(advisor_config.advisor.api_key_env, raising=False)
    hints = ReconnaissanceAdvisor(advisor_config).analyze("https://example.com")
    assert hints.rationale == "No LLM API key configured"


def test_advisor_hints_from_llm(advisor_config, site):
    client = FakeClient(
        '{"estimated_url_count": "250", "recommended_crawl_depth": 42,'
        ' "url_patterns": "/news/", "site_structure": "news portal", "rationale": "small site"}'
    )
    advisor = ReconnaissanceAdvisor(advisor_config, transport=site.transport(), client=client)

    hints = advisor.analyze("https://example.com/")

    assert hints.estimated_url_count == 250
    assert hints.recommended_crawl_depth == 10
    assert hints.url_patterns == ["/news/"]
    assert hints.site_structure == "news portal"
    assert hints.has_sitemap is True
    prompt = client.completions.calls[0]["messages"][1]["content"]
    assert "Example Home" in prompt
    assert "/news/2024/01/launch-of-new-probe" in prompt
    assert "other.org" not in prompt


def test_advisor_never_raises(advisor_config, site):
    broken = FakeClient(error=RuntimeError("rate limited"))
    hints = ReconnaissanceAdvisor(advisor_config, transport=site.transport(), client=broken).analyze(
        "https://example.com/"
    )
    assert hints.is_empty()
    assert hints.rationale.startswith("LLM error (RuntimeError)")

    site.down_hosts.add("example.com")
    hints = ReconnaissanceAdvisor(advisor_config, transport=site.transport(), client=FakeClient("{}")).analyze(
        "https://example.com/"
    )
    assert hints.rationale.startswith("Seed not reachable")


def news_page() -> ExtractedPage:
    return ExtractedPage(
        url="https://example.com/news/2024/01/launch",
        meta=PageMeta(title="Launch of New Probe", description="A probe launched."),
    )


def test_classify_with_llm(config):
    client = FakeClient(
        '{"category": "news", "confidence": 0.9, "summary": "Probe launched.", "keywords": "probe, launch"}'
    )

    asset = classify_llm_tool(news_page(), AssetType.ARTICLE, config, client=client)

    assert asset.category == "NEWS"
    assert asset.source == "llm"
    assert asset.keywords == ["probe", "launch"]
    assert asset.needs_review is False
    assert asset.model_version == config.advisor.model


def test_classify_unknown_category_and_low_confidence(config):
    client = FakeClient('{"category": "BLOG", "confidence": "high"}')

    asset = classify_llm_tool(news_page(), AssetType.ARTICLE, config, client=client)

    assert asset.category == "OTHER"
    assert asset.confidence == 0.0
    assert asset.needs_review is True


def test_classify_falls_back_to_heuristic(config):
    asset = classify_llm_tool(news_page(), AssetType.ARTICLE, config, client=FakeClient("not json"))

    assert asset.source == "heuristic"
    assert asset.category == "NEWS"
    assert asset.needs_review is True
