"""OpenAI-compatible text generation used for planning and writing."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

from research_relay.config import settings
from research_relay.errors import GenerationError
from research_relay.services import logger as log_service

# provider -> (default base url, settings attribute holding the key)
PROVIDER_ENDPOINTS: dict[str, tuple[str, str]] = {
    "openai": ("https://api.openai.com/v1", "openai_api_key"),
    "openrouter": ("https://openrouter.ai/api/v1", "openrouter_api_key"),
    "groq": ("https://api.groq.com/openai/v1", "groq_api_key"),
    "deepseek": ("https://api.deepseek.com/v1", "deepseek_api_key"),
    "perplexity": ("https://api.perplexity.ai", "pplx_api_key"),
    "mistral": ("https://api.mistral.ai/v1", "mistral_api_key"),
}


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OpenAICompatibleGenerator:
    """Single-turn chat completion against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        max_tokens: int | None = None,
    ):
        self.provider = (provider or settings.llm_provider).lower().strip()
        if self.provider not in PROVIDER_ENDPOINTS:
            raise GenerationError(f"Unsupported LLM provider: {self.provider}")
        default_url, key_attr = PROVIDER_ENDPOINTS[self.provider]
        self.model = model or settings.llm_model
        self.api_key = api_key if api_key is not None else getattr(settings, key_attr, "")
        self.key_name = key_attr.upper()
        self.base_url = (base_url or settings.llm_base_url).strip() or default_url
        self.timeout_s = timeout_s or settings.request_timeout_clamped_ms / 1000.0
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self._client: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_s,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationError(
                f"Missing {self.key_name} for provider '{self.provider}'. "
                "Set it in your .env or switch provider."
            )

        from openai import OpenAIError

        t0 = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._get_client().chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            self._log(t0, error="timeout")
            raise GenerationError(f"{self.provider} generation timed out after {self.timeout_s:.0f}s") from exc
        except OpenAIError as exc:
            self._log(t0, error=str(exc))
            raise GenerationError(f"{self.provider} generation failed: {exc}") from exc

        usage = getattr(response, "usage", None)
        self._log(
            t0,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return getattr(choices[0].message, "content", None) or ""

    def _log(self, t0: float, *, error: str | None = None, **usage: int) -> None:
        log_service.log_llm_call(
            model=f"{self.provider}/{self.model}",
            caller="pipeline",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error" if error else "success",
            error=error,
            **usage,
        )


def get_generator(provider: str | None = None, model: str | None = None) -> OpenAICompatibleGenerator:
    return OpenAICompatibleGenerator(provider=provider, model=model)
