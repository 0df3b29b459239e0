"""ContextRetriever: gather notes and ranked memories for an inbound query."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable

from ..types import (
    CompleteEvent,
    ContextEngineError,
    ConversationMessage,
    EmbeddingFailed,
    EmbeddingProvider,
    GatherEvent,
    GatherPhase,
    GatherResult,
    MemoryItem,
    MemorySearchProvider,
    MessageRole,
    NoteFile,
    NotesSource,
    PersistenceFailed,
    ProgressEvent,
    RetrievalConfig,
    ScoredMemory,
    TagGeneratorFn,
)
from .ranker import ContextRanker

logger = logging.getLogger(__name__)

_DONE = object()  # end-of-stream sentinel on the event queue


@dataclass
class _Candidates:
    """Pre-rank output of the memory branch."""
    tags: list[str] = field(default_factory=list)
    vector: list[float] = field(default_factory=list)
    semantic: list[ScoredMemory] = field(default_factory=list)
    tag_results: list[MemoryItem] = field(default_factory=list)


class ContextRetriever:
    """Retrieve notes and ranked memories for a query.

    ``gather`` runs two branches concurrently: note loading and the memory
    pipeline (tags → embedding → parallel semantic + tag search). Ranking
    happens once both have joined.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        memory_search: MemorySearchProvider,
        notes_source: NotesSource | None = None,
        config: RetrievalConfig | None = None,
        ranker: ContextRanker | None = None,
    ) -> None:
        self.embedder = embedder
        self.memory_search = memory_search
        self.notes_source = notes_source
        self.config = config or RetrievalConfig()
        self.ranker = ranker or ContextRanker()

    async def gather(
        self,
        query: str,
        history: list[ConversationMessage] | None = None,
        limit: int | None = None,
        tag_generator: TagGeneratorFn | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[GatherEvent]:
        """Stream progress events, ending with a ``CompleteEvent``.

        Raises ``EmbeddingFailed`` or ``PersistenceFailed`` from the
        iteration on critical failures. Setting ``cancel_event`` makes the
        memory branch return empty results after the embedding step.
        Closing the stream early cancels the pipeline.
        """
        events: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._run(
            query,
            history or [],
            self.config.default_limit if limit is None else limit,
            tag_generator,
            cancel_event,
            lambda phase: events.put_nowait(ProgressEvent(phase)),
        ))
        task.add_done_callback(lambda _: events.put_nowait(_DONE))

        try:
            while True:
                event = await events.get()
                if event is _DONE:
                    break
                yield event
            result = task.result()
        finally:
            if not task.done():
                task.cancel()

        yield ProgressEvent(GatherPhase.COMPLETE)
        yield CompleteEvent(result)

    async def gather_context(
        self,
        query: str,
        history: list[ConversationMessage] | None = None,
        limit: int | None = None,
        tag_generator: TagGeneratorFn | None = None,
        cancel_event: asyncio.Event | None = None,
        on_progress: Callable[[GatherPhase], None] | None = None,
    ) -> GatherResult:
        """Consume ``gather`` and return its result."""
        async for event in self.gather(query, history, limit, tag_generator, cancel_event):
            if isinstance(event, CompleteEvent):
                return event.result
            if on_progress is not None:
                on_progress(event.phase)
        raise ContextEngineError("Gather stream ended without a result")

    async def _run(
        self,
        query: str,
        history: list[ConversationMessage],
        limit: int,
        tag_generator: TagGeneratorFn | None,
        cancel_event: asyncio.Event | None,
        emit: Callable[[GatherPhase], None],
    ) -> GatherResult:
        start_time = time.monotonic()
        logger.debug(
            "Gathering context for query length %d, history count %d", len(query), len(history),
        )

        emit(GatherPhase.AUGMENTING)
        augmented = self.build_augmented_context(query, history)

        notes_task = asyncio.create_task(self._load_notes())
        try:
            candidates = await self._fetch_candidates(
                query, augmented, limit, tag_generator, cancel_event, emit,
            )
        except (EmbeddingFailed, PersistenceFailed) as e:
            logger.error(f"Context gathering failed: {e}")
            notes_task.cancel()
            raise
        except asyncio.CancelledError:
            notes_task.cancel()
            raise
        notes = await notes_task

        memories: list[ScoredMemory] = []
        if candidates is not None:
            emit(GatherPhase.RANKING)
            ranked = self.ranker.rank_memories(
                candidates.semantic, candidates.tag_results, candidates.vector,
            )
            memories = ranked[:limit]
            logger.info(
                "Recall: %d memories selected from %d semantic + %d tag matches",
                len(memories), len(candidates.semantic), len(candidates.tag_results),
            )
        else:
            candidates = _Candidates()

        elapsed = time.monotonic() - start_time
        logger.info("Context gathered in %.3fs", elapsed)

        return GatherResult(
            notes=notes,
            memories=memories,
            tags=candidates.tags,
            query_vector=candidates.vector,
            augmented_query=augmented,
            semantic_results=candidates.semantic,
            tag_results=candidates.tag_results,
            elapsed=elapsed,
        )

    def build_augmented_context(self, query: str, history: list[ConversationMessage]) -> str:
        """Prefix the query with the last few user/assistant messages for tagging."""
        if not history:
            return query
        lookback = self.config.history_context_messages
        turns = [
            m.content for m in history
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        ]
        history_context = " ".join(turns[-lookback:] if lookback > 0 else [])
        if not history_context:
            return query
        augmented = f"{history_context} {query}"
        logger.debug("Augmented tag context: %s", augmented)
        return augmented

    async def _load_notes(self) -> list[NoteFile]:
        if self.notes_source is None:
            return []
        try:
            notes = await self.notes_source.list_notes()
        except Exception as e:
            logger.warning(f"Failed to load notes: {e}")
            return []
        return sorted(notes, key=lambda n: n.name)

    async def _fetch_candidates(
        self,
        query: str,
        tag_context: str,
        limit: int,
        tag_generator: TagGeneratorFn | None,
        cancel_event: asyncio.Event | None,
        emit: Callable[[GatherPhase], None],
    ) -> _Candidates | None:
        """Memory branch. ``None`` means retrieval was skipped (empty query or cancelled)."""
        if not query.strip():
            return None

        tags: list[str] = []
        if tag_generator is not None:
            emit(GatherPhase.TAGGING)
            try:
                tags = list(await tag_generator(tag_context))
                logger.debug("Generated tags: %s", tags)
            except Exception as e:
                # Non-critical: continue with the embedding alone
                logger.warning(f"Optional tag generation failed: {e}")

        emit(GatherPhase.EMBEDDING)
        try:
            vector = list(await self.embedder.embed(query))
        except EmbeddingFailed:
            raise
        except Exception as e:
            raise EmbeddingFailed(f"Embedding generation failed: {e}") from e

        if cancel_event is not None and cancel_event.is_set():
            logger.debug("Gather cancelled after embedding")
            return None

        emit(GatherPhase.SEARCHING)
        try:
            raw_semantic, tag_results = await asyncio.gather(
                self.memory_search.search_by_similarity(
                    vector,
                    limit * self.config.overfetch_factor,
                    self.config.min_similarity,
                ),
                self.memory_search.search_by_any_tag(tags),
            )
        except PersistenceFailed:
            raise
        except Exception as e:
            raise PersistenceFailed(f"Memory search failed: {e}") from e

        return _Candidates(
            tags=tags,
            vector=vector,
            semantic=[ScoredMemory(memory=m, similarity=s) for m, s in raw_semantic],
            tag_results=list(tag_results),
        )
