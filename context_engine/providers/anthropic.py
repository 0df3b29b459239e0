"""AnthropicProvider: calls Messages API via httpx (no SDK dependency)."""

from __future__ import annotations

import os

from ..types import LLMProviderError
from .base import BaseProvider

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    """Completion provider using Anthropic Messages API directly via httpx."""

    def __init__(
        self,
        api_key: str | None = None,
        api_key_env: str = "ANTHROPIC_API_KEY",
        model: str = "claude-sonnet-4-5",
        fast_model: str = "claude-haiku-4-5",
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> None:
        super().__init__(model, fast_model, max_tokens, temperature)
        self.api_key = api_key or os.environ.get(api_key_env, "")
        if not self.api_key:
            raise LLMProviderError(
                f"No API key found. Set {api_key_env} env var or pass api_key.",
                provider="anthropic",
            )

    def _provider_name(self) -> str:
        return "anthropic"

    def _get_url(self) -> str:
        return API_URL

    def _get_headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def _build_payload(self, model: str, prompt: str) -> dict:
        return {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _extract_text(self, data: dict) -> str:
        content = data.get("content", [])
        text_parts = [
            block["text"]
            for block in content
            if block.get("type") == "text"
        ]
        return "\n".join(text_parts)
