"""InMemoryMemoryStore: process-local memory search for tests and small deployments."""

from __future__ import annotations

import logging

from ..core.math_utils import cosine_similarity_with_magnitudes, magnitude
from ..types import MemoryItem

logger = logging.getLogger(__name__)


class InMemoryMemoryStore:
    """Holds memory items in a dict and searches them by embedding or tag."""

    def __init__(self, memories: list[MemoryItem] | None = None) -> None:
        self._memories: dict[str, MemoryItem] = {}
        for memory in memories or []:
            self.add(memory)

    def __len__(self) -> int:
        return len(self._memories)

    def add(self, memory: MemoryItem) -> None:
        self._memories[memory.id] = memory

    def remove(self, memory_id: str) -> bool:
        return self._memories.pop(memory_id, None) is not None

    def get(self, memory_id: str) -> MemoryItem | None:
        return self._memories.get(memory_id)

    async def search_by_similarity(
        self, vector: list[float], limit: int, min_similarity: float,
    ) -> list[tuple[MemoryItem, float]]:
        """Memories at or above ``min_similarity``, best first, at most ``limit``."""
        query_magnitude = magnitude(vector)
        if query_magnitude <= 0 or limit <= 0:
            return []

        scored: list[tuple[MemoryItem, float]] = []
        for memory in self._memories.values():
            if not memory.embedding:
                continue
            sim = cosine_similarity_with_magnitudes(
                vector, memory.embedding, query_magnitude, magnitude(memory.embedding),
            )
            if sim >= min_similarity:
                scored.append((memory, sim))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        logger.debug("Similarity search: %d of %d above %.2f", len(scored), len(self), min_similarity)
        return scored[:limit]

    async def search_by_any_tag(self, tags: list[str]) -> list[MemoryItem]:
        """Memories carrying at least one of ``tags`` (case-insensitive)."""
        wanted = {t.lower() for t in tags}
        if not wanted:
            return []
        return [
            m for m in self._memories.values()
            if any(t.lower() in wanted for t in m.tags)
        ]
