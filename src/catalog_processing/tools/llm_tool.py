"""LLM tool - OpenAI chat calls that must answer with a single JSON object."""

import json
import logging
import os
import time
from typing import Any, Optional

import httpx
from openai import OpenAI

from ..config.loader import AdvisorConfig

logger = logging.getLogger(__name__)


def get_api_key(settings: AdvisorConfig) -> str:
    return os.environ.get(settings.api_key_env, "")


def build_openai_client(settings: AdvisorConfig, api_key: Optional[str] = None) -> OpenAI:
    # Disable proxy usage for OpenAI client (trust_env=False)
    return OpenAI(
        api_key=api_key or get_api_key(settings),
        http_client=httpx.Client(trust_env=False, timeout=settings.timeout),
    )


def parse_json_object(content: str) -> dict[str, Any]:
    """
    Strip markdown code fences and surrounding prose, then parse the first JSON object.
    Raises ValueError (json.JSONDecodeError included) when no object can be read.
    """
    raw = content.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else raw[3:]
    if raw.endswith("```"):
        raw = raw.rsplit("```", 1)[0].strip()

    # Find the first { and its matching } by counting braces
    start_idx = raw.find("{")
    if start_idx >= 0:
        depth = 0
        for i in range(start_idx, len(raw)):
            if raw[i] == "{":
                depth += 1
            elif raw[i] == "}":
                depth -= 1
                if depth == 0:
                    raw = raw[start_idx : i + 1]
                    break

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def chat_json(
    client: OpenAI,
    settings: AdvisorConfig,
    system_prompt: str,
    user_prompt: str,
    subject: str = "",
) -> dict[str, Any]:
    """One chat completion parsed as a JSON object. API and parse errors propagate."""
    create_params: dict[str, Any] = {
        "model": settings.model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    }
    # GPT-5 models use max_completion_tokens and only the default temperature
    if settings.model.startswith("gpt-5"):
        create_params["max_completion_tokens"] = settings.max_tokens
    else:
        create_params["max_tokens"] = settings.max_tokens
        create_params["temperature"] = settings.temperature

    start_time = time.time()
    logger.debug("Calling LLM API for %s...", subject)
    response = client.chat.completions.create(**create_params)
    elapsed = time.time() - start_time

    usage = response.usage
    if usage is not None:
        logger.info(
            "LLM call completed in %.2fs for %s - prompt: %d tokens, completion: %d tokens",
            elapsed, subject, usage.prompt_tokens, usage.completion_tokens,
        )

    content = response.choices[0].message.content
    if not content:
        raise ValueError(f"Empty LLM response (finish reason: {response.choices[0].finish_reason})")
    try:
        return parse_json_object(content)
    except ValueError:
        logger.error("LLM response (first 500 chars): %s", content[:500])
        raise
