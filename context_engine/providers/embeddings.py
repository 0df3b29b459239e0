"""Embedding providers: local sentence-transformers and OpenAI-compatible HTTP."""

from __future__ import annotations

import asyncio
import logging
import os

import httpx

from ..types import EmbeddingFailed

logger = logging.getLogger(__name__)

_MODEL_NOT_LOADED = object()  # sentinel for lazy model loading


class SentenceTransformerEmbeddingProvider:
    """Embed text with a local sentence-transformers model.

    The model loads on first use; encoding runs in a worker thread so the
    event loop is never blocked.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        self.model_name = model_name
        self._model = _MODEL_NOT_LOADED

    def _load_model(self):
        if self._model is _MODEL_NOT_LOADED:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise EmbeddingFailed(
                    "sentence-transformers not installed. "
                    "Install with: pip install context-engine[embeddings]"
                ) from e
            logger.info("Loading embedding model %s", self.model_name)
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, text: str) -> list[float]:
        model = self._load_model()
        return model.encode([text], convert_to_numpy=True)[0].tolist()

    async def embed(self, text: str) -> list[float]:
        try:
            return await asyncio.to_thread(self._encode, text)
        except EmbeddingFailed:
            raise
        except Exception as e:
            raise EmbeddingFailed(f"Local embedding failed: {e}") from e


class OpenAIEmbeddingProvider:
    """Embed text via an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        timeout: float = 30.0,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.environ.get(api_key_env, "")
        self.timeout = timeout

    async def embed(self, text: str) -> list[float]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"model": self.model, "input": text}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/embeddings", headers=headers, json=payload,
                )
        except httpx.HTTPError as e:
            raise EmbeddingFailed(f"Embedding request failed: {e}") from e

        if response.status_code != 200:
            raise EmbeddingFailed(
                f"Embedding request failed: HTTP {response.status_code}: {response.text}"
            )

        data = response.json().get("data", [])
        if not data or "embedding" not in data[0]:
            raise EmbeddingFailed("Embedding response contained no vector")
        return [float(x) for x in data[0]["embedding"]]


def create_embedding_provider(config):
    """Build an embedding provider from an ``EmbeddingConfig``."""
    if config.provider == "openai":
        return OpenAIEmbeddingProvider(
            model=config.model,
            base_url=config.base_url,
            api_key_env=config.api_key_env,
        )
    if config.provider == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(config.model)
    raise ValueError(f"Unknown embedding provider: '{config.provider}'")
