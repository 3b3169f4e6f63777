"""LLM provider abstraction via LiteLLM Router.

Board personas are generated through the "reasoning" model group:
Claude Sonnet first, GPT-4o as fallback. Each call carries tenant
metadata so provider-side cost reports can be split per tenant.
"""

from __future__ import annotations

from typing import AsyncGenerator

import structlog
from litellm import Router

from src.boardroom.config import get_settings

logger = structlog.get_logger(__name__)


class LLMUnavailableError(RuntimeError):
    """Raised when no LLM provider key is configured."""


def _build_model_list(anthropic_key: str, openai_key: str) -> list[dict]:
    model_list: list[dict] = []
    if anthropic_key:
        model_list.append({
            "model_name": "reasoning",
            "litellm_params": {
                "model": "anthropic/claude-sonnet-4-20250514",
                "api_key": anthropic_key,
            },
        })
    if openai_key:
        model_list.append({
            "model_name": "reasoning",
            "litellm_params": {
                "model": "openai/gpt-4o",
                "api_key": openai_key,
            },
        })
    return model_list


class LLMService:
    """Thin wrapper around a LiteLLM Router with streaming support."""

    def __init__(self) -> None:
        settings = get_settings()
        model_list = _build_model_list(settings.ANTHROPIC_API_KEY, settings.OPENAI_API_KEY)

        if not model_list:
            logger.warning("llm.no_api_keys_configured")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )

    async def streaming_completion(
        self,
        messages: list[dict],
        model: str = "reasoning",
        max_tokens: int = 1200,
        temperature: float = 0.4,
        metadata: dict | None = None,
    ) -> AsyncGenerator[str, None]:
        """Execute a streaming completion call.

        Yields content chunks as strings.

        Raises:
            LLMUnavailableError: If no LLM API keys are configured.
        """
        if not self.router:
            raise LLMUnavailableError("No LLM API keys configured")

        response = await self.router.acompletion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            metadata=metadata or {},
            stream=True,
        )

        async for chunk in response:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content


# ── Singleton ─────────────────────────────────────────────────────────────────

_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create the LLM service singleton."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
