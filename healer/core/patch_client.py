"""Patch-generation service boundary.

Sends an error message plus the faulty function to an LLM and pulls the first
fenced code block out of its reply.

Supports three providers:
- vllm: Local OpenAI-compatible API (pydantic-ai)
- openrouter: Cloud API with many models (pydantic-ai)
- http: Raw chat-completions endpoint (PATCH_API_URL) called with httpx
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx
from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.models.openrouter import OpenRouterModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.providers.openrouter import OpenRouterProvider

from healer.config import (
    OPENROUTER_API_KEY,
    OPENROUTER_MODEL_NAME,
    PATCH_API_URL,
    PATCH_PROVIDER,
    VLLM_API_KEY,
    VLLM_BASE_URL,
    VLLM_MODEL_NAME,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior developer. Given a JavaScript error and the faulty function, "
    "return a fixed version of the function. Reply with the complete function in a "
    "single fenced code block and keep its name and signature unchanged."
)

CODE_BLOCK_RE = re.compile(r"```(?:[\w+-]+[ \t]*\n|[ \t]*\n?)([\s\S]*?)```")


@dataclass
class PatchCandidate:
    code: str


def extract_first_code_block(response_text: str | None) -> str | None:
    """Return the stripped body of the first fenced block, or None."""
    if not response_text:
        return None
    match = CODE_BLOCK_RE.search(response_text)
    return match.group(1).strip() if match else None


def build_user_prompt(error_message: str | None, function_code: str) -> str:
    return f"Error: {error_message or 'unknown error'}\n\nFunction:\n{function_code}"


def build_vllm_model(
    model_name: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
) -> OpenAIChatModel:
    """Build vLLM model instance (OpenAI-compatible local API)."""
    provider = OpenAIProvider(
        base_url=base_url or VLLM_BASE_URL,
        api_key=api_key or VLLM_API_KEY,
    )
    return OpenAIChatModel(
        model_name=model_name or VLLM_MODEL_NAME,
        provider=provider,
    )


def build_openrouter_model(
    model_name: str | None = None,
    api_key: str | None = None,
) -> OpenRouterModel:
    """Build OpenRouter model instance."""
    return OpenRouterModel(
        model_name=model_name or OPENROUTER_MODEL_NAME,
        provider=OpenRouterProvider(api_key=api_key or OPENROUTER_API_KEY),
    )


def build_model(
    model_name: str | None = None,
    api_key: str | None = None,
    provider: str | None = None,
) -> OpenAIChatModel | OpenRouterModel:
    """Build model instance based on provider ('vllm' or 'openrouter')."""
    provider = provider or PATCH_PROVIDER
    if provider == "openrouter" and not (api_key or OPENROUTER_API_KEY):
        logger.warning("OpenRouter requested but OPENROUTER_API_KEY is not set; using vLLM")
        provider = "vllm"

    if provider == "openrouter":
        logger.info("Building OpenRouter model: %s", model_name or OPENROUTER_MODEL_NAME)
        return build_openrouter_model(model_name, api_key)
    logger.info("Building vLLM model: %s", model_name or VLLM_MODEL_NAME)
    return build_vllm_model(model_name)


def build_patch_agent(model: OpenAIChatModel | OpenRouterModel | None = None, provider: str | None = None) -> Agent:
    if model is None:
        model = build_model(provider=provider)
    return Agent(model=model, system_prompt=SYSTEM_PROMPT)


class PatchClient:
    """Asks the patch service for a fixed version of a function.

    The request itself carries no timeout; a hung service stalls only the
    pipeline run that issued it.
    """

    def __init__(
        self,
        provider: str | None = None,
        agent: Agent | None = None,
        api_url: str | None = None,
        api_key: str | None = None,
        model_name: str | None = None,
    ):
        self.provider = (provider or PATCH_PROVIDER).lower()
        self.api_url = api_url or PATCH_API_URL
        self.api_key = api_key if api_key is not None else OPENROUTER_API_KEY
        self.model_name = model_name or OPENROUTER_MODEL_NAME
        self._agent = agent

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = build_patch_agent(provider=self.provider)
        return self._agent

    async def request_fix(self, error_message: str | None, function_code: str) -> str | None:
        """Send the error and function source; return the raw response text."""
        prompt = build_user_prompt(error_message, function_code)
        if self.provider == "http":
            return await self._request_http(prompt)
        result = await self.agent.run(prompt)
        output = result.output
        return output if isinstance(output, str) else str(output)

    async def _request_http(self, prompt: str) -> str | None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        async with httpx.AsyncClient(timeout=None) as client:
            resp = await client.post(self.api_url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        try:
            return data["choices"][0]["message"]["content"] or None
        except (KeyError, IndexError, TypeError):
            logger.warning("Patch service response has no message content")
            return None

    async def get_patch_candidate(self, error_message: str | None, function_code: str) -> PatchCandidate | None:
        """Request a fix and extract its first fenced code block."""
        response = await self.request_fix(error_message, function_code)
        code = extract_first_code_block(response)
        if not code:
            return None
        return PatchCandidate(code=code)
