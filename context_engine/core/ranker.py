"""ContextRanker: merge semantic and tag matches, boost tags, decay by age."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..types import MemoryItem, RankerConfig, ScoredMemory
from .math_utils import cosine_similarity_with_magnitudes, magnitude

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def _as_utc(dt: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def decay_factor(updated_at: datetime, half_life_days: float, now: datetime) -> float:
    """Exponential freshness weight: 1.0 at age 0, 0.5 at one half-life, 0.25 at two."""
    updated_at, now = _as_utc(updated_at), _as_utc(now)
    age_days = (now - updated_at).total_seconds() / SECONDS_PER_DAY
    return 2.0 ** (-age_days / half_life_days)


class ContextRanker:
    """Rank memories by semantic similarity, tag matches and time decay.

    Tag matches are explicit signals, so they get a fixed boost that lifts
    them without letting them bury a strong semantic match. Every score is
    then multiplied by a half-life decay on ``updated_at``.
    """

    def __init__(self, config: RankerConfig | None = None) -> None:
        self.config = config or RankerConfig()

    def rank_memories(
        self,
        semantic: list[ScoredMemory],
        tag_based: list[MemoryItem],
        query_embedding: list[float],
        now: datetime | None = None,
    ) -> list[ScoredMemory]:
        """Return one combined list sorted by decayed score, highest first."""
        now = now or datetime.now(timezone.utc)
        boost = self.config.tag_boost

        tag_ids = {m.id for m in tag_based}
        results: list[ScoredMemory] = []
        seen: set[str] = set()
        for res in semantic:
            score = res.similarity
            if res.memory.id in tag_ids:
                score = (score or 0.0) + boost
            results.append(ScoredMemory(memory=res.memory, similarity=score))
            seen.add(res.memory.id)

        query_magnitude = magnitude(query_embedding)
        added = 0
        for memory in tag_based:
            if memory.id in seen:
                continue
            sim = cosine_similarity_with_magnitudes(
                query_embedding,
                memory.embedding,
                query_magnitude,
                magnitude(memory.embedding),
            )
            results.append(ScoredMemory(memory=memory, similarity=sim + boost))
            seen.add(memory.id)
            added += 1

        decayed = [
            ScoredMemory(
                memory=r.memory,
                similarity=r.score * decay_factor(
                    r.memory.updated_at, self.config.half_life_days, now,
                ),
            )
            for r in results
        ]
        decayed.sort(key=lambda r: r.score, reverse=True)

        logger.debug(
            "Ranked %d memories (%d semantic, %d tag-only)",
            len(decayed), len(semantic), added,
        )
        return decayed
