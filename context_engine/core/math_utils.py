"""Shared vector math: dot product, magnitude, cosine similarity, normalization."""

from __future__ import annotations

import math
from typing import Sequence


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def magnitude(v: Sequence[float]) -> float:
    """L2 norm. 0.0 for an empty vector."""
    if not v:
        return 0.0
    return math.sqrt(sum(x * x for x in v))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for mismatched lengths, empty or zero vectors."""
    if len(a) != len(b) or not a:
        return 0.0
    norm = magnitude(a) * magnitude(b)
    if norm <= 0:
        return 0.0
    return dot(a, b) / norm


def cosine_similarity_with_magnitudes(
    a: Sequence[float],
    b: Sequence[float],
    magnitude_a: float,
    magnitude_b: float,
) -> float:
    """Cosine similarity using precomputed magnitudes.

    Used when one query vector is compared against many candidates so its
    norm is computed once.
    """
    if len(a) != len(b) or not a or magnitude_a <= 0 or magnitude_b <= 0:
        return 0.0
    return dot(a, b) / (magnitude_a * magnitude_b)


def normalize(v: Sequence[float]) -> list[float]:
    """Scale to unit length. Returns the input unchanged if empty or zero."""
    if not v:
        return list(v)
    norm = magnitude(v)
    if norm <= 0:
        return list(v)
    return [x / norm for x in v]
