"""ContextEngine: facade wiring config, retrieval and compression together."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Callable

from .config import load_config
from .core.compressor import HistoryCompressor
from .core.ranker import ContextRanker
from .core.retriever import ContextRetriever
from .core.tag_generator import LLMTagGenerator
from .providers import create_embedding_provider, create_provider
from .storage.notes import FilesystemNotesSource
from .token_counter import count_parts, create_token_counter
from .types import (
    CompletionProvider,
    CompressionScope,
    ContextEngineConfig,
    ConversationMessage,
    EmbeddingProvider,
    GatherEvent,
    GatherPhase,
    GatherResult,
    MemoryItem,
    MemorySearchProvider,
    NotesSource,
    TagGeneratorFn,
)

logger = logging.getLogger(__name__)


class ContextEngine:
    """Retrieval and compression behind one object.

    Usage:
        engine = ContextEngine(memory_search=store, config_path="./context-engine.yaml")

        # Before sending to the LLM
        result = await engine.gather_context(query, history)

        # When the history outgrows its budget
        if not engine.fits_budget(history, budget):
            history = await engine.recursive_summarize(history, budget)

    Collaborators not passed in are built from config: the embedder from
    ``embedding``, the completion provider from ``summarization.provider``
    in the provider table, and a notes source when ``retrieval.notes_dir``
    is set.
    """

    def __init__(
        self,
        memory_search: MemorySearchProvider,
        config_path: str | Path | None = None,
        config: ContextEngineConfig | None = None,
        embedder: EmbeddingProvider | None = None,
        llm: CompletionProvider | None = None,
        notes_source: NotesSource | None = None,
        tag_generator: TagGeneratorFn | None = None,
    ) -> None:
        self.config = config or load_config(config_path)
        self._token_counter = create_token_counter(self.config.token_counter)

        self._llm = llm if llm is not None else self._build_llm()
        self._embedder = embedder or create_embedding_provider(self.config.embedding)
        self._init_tag_generator(tag_generator)
        self._init_retriever(memory_search, notes_source)
        self._init_compressor()

    def _build_llm(self) -> CompletionProvider | None:
        """Completion provider from the provider table, or ``None`` when unconfigured."""
        provider_name = self.config.summarization.provider
        provider_config = self.config.providers.get(provider_name)
        if provider_config is None:
            logger.debug("No provider entry for '%s'; summaries will use fallbacks", provider_name)
            return None
        return create_provider(provider_name, provider_config, self.config.summarization)

    def _init_tag_generator(self, tag_generator: TagGeneratorFn | None) -> None:
        self._tag_generator = tag_generator
        if (
            self._tag_generator is None
            and self.config.tag_generator.enabled
            and self._llm is not None
        ):
            self._tag_generator = LLMTagGenerator(self._llm, self.config.tag_generator)

    def _init_retriever(
        self, memory_search: MemorySearchProvider, notes_source: NotesSource | None,
    ) -> None:
        retrieval = self.config.retrieval
        if notes_source is None and retrieval.notes_dir:
            notes_source = FilesystemNotesSource(retrieval.notes_dir, retrieval.note_extensions)
        self._retriever = ContextRetriever(
            embedder=self._embedder,
            memory_search=memory_search,
            notes_source=notes_source,
            config=retrieval,
            ranker=ContextRanker(self.config.ranker),
        )

    def _init_compressor(self) -> None:
        self._compressor = HistoryCompressor(
            config=self.config.compression,
            token_counter=self._token_counter,
            llm=self._llm,
        )

    @property
    def retriever(self) -> ContextRetriever:
        return self._retriever

    @property
    def compressor(self) -> HistoryCompressor:
        return self._compressor

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def gather(
        self,
        query: str,
        history: list[ConversationMessage] | None = None,
        limit: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[GatherEvent]:
        """Stream gather progress events; see ``ContextRetriever.gather``."""
        return self._retriever.gather(
            query, history, limit, self._tag_generator, cancel_event,
        )

    async def gather_context(
        self,
        query: str,
        history: list[ConversationMessage] | None = None,
        limit: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_progress: Callable[[GatherPhase], None] | None = None,
    ) -> GatherResult:
        return await self._retriever.gather_context(
            query, history, limit, self._tag_generator, cancel_event, on_progress,
        )

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    def fits_budget(self, messages: list[ConversationMessage], budget: int) -> bool:
        """True when the messages' estimated tokens are within ``budget``."""
        return count_parts((m.content for m in messages), self._token_counter) <= budget

    async def compress(
        self,
        messages: list[ConversationMessage],
        scope: CompressionScope = CompressionScope.TOPIC,
    ) -> list[ConversationMessage]:
        return await self._compressor.compress(messages, scope)

    async def recursive_summarize(
        self, messages: list[ConversationMessage], target_tokens: int,
    ) -> list[ConversationMessage]:
        return await self._compressor.recursive_summarize(messages, target_tokens)

    def summarize_tool_interactions(
        self, messages: list[ConversationMessage],
    ) -> list[ConversationMessage]:
        return self._compressor.summarize_tool_interactions(messages)

    async def summarize_memories(self, memories: list[MemoryItem], target_tokens: int) -> str:
        return await self._compressor.summarize_memories(memories, target_tokens)
