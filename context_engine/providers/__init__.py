from __future__ import annotations

from ..types import LLMProviderError, SummarizationConfig
from .anthropic import AnthropicProvider
from .base import BaseProvider
from .embeddings import (
    OpenAIEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
    create_embedding_provider,
)
from .generic_openai import GenericOpenAIProvider


def create_provider(
    provider_name: str,
    provider_config: dict,
    summarization: SummarizationConfig | None = None,
) -> BaseProvider:
    """Build a completion provider from a provider-table entry.

    ``type`` defaults to the entry's name; ``ollama`` entries are served by
    the OpenAI-compatible provider.
    """
    summarization = summarization or SummarizationConfig()
    ptype = provider_config.get("type", provider_name)
    model = provider_config.get("model", summarization.model)
    fast_model = provider_config.get("fast_model", summarization.fast_model)

    if ptype in ("generic_openai", "ollama"):
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", "http://127.0.0.1:11434/v1"),
            model=model,
            fast_model=fast_model,
            max_tokens=summarization.max_tokens,
            temperature=summarization.temperature,
            api_key=provider_config.get("api_key", "not-needed"),
        )

    if ptype == "anthropic":
        return AnthropicProvider(
            api_key=provider_config.get("api_key"),
            api_key_env=provider_config.get("api_key_env", "ANTHROPIC_API_KEY"),
            model=model,
            fast_model=fast_model,
            max_tokens=summarization.max_tokens,
            temperature=summarization.temperature,
        )

    raise LLMProviderError(f"Unknown provider type: '{ptype}'", provider=provider_name)


__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GenericOpenAIProvider",
    "LLMProviderError",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_embedding_provider",
    "create_provider",
]
