"""Contract generation gateway: prompt -> OpenAI-compatible model -> Solidity.

One attempt per call. Errors are raised as TokensmithError subclasses and
mapped to JSON responses by the FastAPI app.
"""
from __future__ import annotations
import json
import logging
import os
import re
import time
from typing import Any

import httpx

from tokensmith.common.errors import ConfigError, UpstreamError, UpstreamFormatError
from tokensmith.common.schema import Chain, GenerationRequest, parse_token_form
from tokensmith.common.templates import build_prompt

LOGGER = logging.getLogger("tokensmith.serve.gateway")

MODEL_BASE_URL = os.getenv("MODEL_BASE_URL", "https://api.openai.com")
MODEL_API_KEY = os.getenv("MODEL_API_KEY", "")
MODEL_ID = os.getenv("MODEL_ID", "gpt-4o-mini")
DEFAULT_CHAIN = Chain(os.getenv("DEFAULT_CHAIN", Chain.ETHEREUM.value))

TEMPERATURE = float(os.getenv("TEMPERATURE", "0.1"))
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "4096"))
MODEL_TIMEOUT_S = float(os.getenv("MODEL_TIMEOUT_S", "120"))

SYSTEM_PROMPT = "You write Solidity smart contracts and answer with JSON only."

_FENCE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def require_api_key() -> str:
    if not MODEL_API_KEY:
        LOGGER.error("MODEL_API_KEY environment variable not set.")
        raise ConfigError()
    return MODEL_API_KEY


def strip_code_fence(text: str) -> str:
    """Remove a single optional leading/trailing markdown fence."""
    text = text.strip()
    match = _FENCE.match(text)
    if match and match.group(2):
        return match.group(2).strip()
    return text


def extract_solidity(raw: str) -> str:
    """
    Pull ``solidityCode`` out of the model's raw text.

    Raises:
        UpstreamFormatError: unparsable JSON, missing key, or non-string value.
    """
    try:
        data = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        LOGGER.error("Model returned invalid JSON: %s", e)
        raise UpstreamFormatError()
    if not isinstance(data, dict) or not isinstance(data.get("solidityCode"), str):
        LOGGER.error("Model JSON has no string 'solidityCode' key")
        raise UpstreamFormatError()
    return data["solidityCode"]


def call_model(prompt: str, api_key: str) -> str:
    """Single chat-completion call; returns the assistant message content."""
    url = f"{MODEL_BASE_URL}/v1/chat/completions"
    headers = {"Authorization": f"Bearer {api_key}"}
    payload: dict[str, Any] = {
        "model": MODEL_ID,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
        "response_format": {"type": "json_object"},
        "stream": False,
    }

    start = time.time()
    try:
        with httpx.Client(timeout=MODEL_TIMEOUT_S) as client:
            r = client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        LOGGER.error("Model request failed: %s", e)
        raise UpstreamError(f"Failed to communicate with the AI model. {e}")

    LOGGER.info("Model answered in %sms", int((time.time() - start) * 1000))
    try:
        return str(data["choices"][0]["message"]["content"])
    except (KeyError, IndexError, TypeError) as e:
        LOGGER.error("Malformed completion response: %s", e)
        raise UpstreamFormatError()


def generate_contract(body: GenerationRequest) -> str:
    """
    Validate a request, prompt the model and return Solidity source.

    The credential check happens before anything else so a misconfigured
    server never reaches the model.
    """
    api_key = require_api_key()
    form = parse_token_form(body.tokenType, body.formData)
    chain = body.selectedChain or DEFAULT_CHAIN
    prompt = build_prompt(body.tokenType, form, chain)
    LOGGER.info("Generating %s token %r for %s", body.tokenType.value, form.name, chain.value)
    return extract_solidity(call_model(prompt, api_key))
