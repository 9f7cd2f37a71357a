"""Configuration loading tests."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from catalog_processing.config.loader import Config, load_config

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


def test_defaults():
    config = Config()
    assert config.crawl_limits.max_depth == 3
    assert config.advisor.allow_expansion is False
    assert config.job_defaults.validate_during_mapping is True
    assert any("wp-admin" in p for p in config.crawl_limits.exclude_patterns)


def test_example_config_loads():
    config = load_config(EXAMPLE_CONFIG)
    assert config.validation.concurrency == 10
    assert config.render_policy.enabled is False


def test_json_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"crawl_limits": {"max_urls": 20}, "job_defaults": {"enhance_with_ai": True}}))

    config = load_config(path)

    assert config.crawl_limits.max_urls == 20
    assert config.job_defaults.enhance_with_ai is True


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Config.from_dict({"validation": {"concurrency": 0}})


def test_unsupported_llm_provider_rejected():
    assert Config.from_dict({"advisor": {"provider": "openai"}}).advisor.provider == "openai"
    with pytest.raises(ValidationError):
        Config.from_dict({"advisor": {"provider": "anthropic"}})
