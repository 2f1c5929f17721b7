"""
Vector math used by the similarity search.

All functions are pure and work on plain sequences of floats. Length
mismatches are hard failures (``DimensionMismatch``); a zero-magnitude vector
has similarity 0 with everything instead of producing NaN.
"""

from __future__ import annotations

import math
from collections.abc import Sequence as SequenceABC
from typing import Iterable, Optional, Sequence, TypeVar

from memory_rag.core.errors import DimensionMismatch, EmptyInput, InvalidVector
from memory_rag.core.interfaces import HasEmbedding
from memory_rag.core.models import ScoredResult, Vector


T = TypeVar("T")


def _check_dims(a: Vector, b: Vector) -> None:
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))


def dot_product(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    product = 0.0
    for x, y in zip(a, b):
        product += x * y
    return product


def calculate_magnitude(vector: Vector) -> float:
    """L2 norm of ``vector``; 0.0 for an all-zero (or empty) vector."""
    # Plain accumulation, so results match cosine_similarity bit for bit
    total = 0.0
    for x in vector:
        total += x * x
    return math.sqrt(total)


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity in [-1, 1], or exactly 0.0 if either vector has zero magnitude."""
    _check_dims(a, b)

    dot = 0.0
    sum_a = 0.0
    sum_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        sum_a += x * x
        sum_b += y * y

    magnitude_a = math.sqrt(sum_a)
    magnitude_b = math.sqrt(sum_b)
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot / (magnitude_a * magnitude_b)


def cosine_similarity_with_magnitude(
    a: Vector,
    b: Vector,
    magnitude_a: float,
    magnitude_b: float,
) -> float:
    """
    Cosine similarity with caller-supplied magnitudes.

    This is the scan hot path: stored vectors carry their magnitude, so only
    the dot product is computed here. The magnitudes are trusted as given.
    """
    _check_dims(a, b)

    dot = 0.0
    for x, y in zip(a, b):
        dot += x * y

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot / (magnitude_a * magnitude_b)


def euclidean_distance(a: Vector, b: Vector) -> float:
    _check_dims(a, b)
    return math.sqrt(sum((x - y) * (x - y) for x, y in zip(a, b)))


def normalize_vector(vector: Vector) -> Vector:
    magnitude = calculate_magnitude(vector)
    if magnitude == 0:
        return vector
    return [x / magnitude for x in vector]


def similarity_score(cosine_sim: float) -> float:
    """Map a cosine similarity from [-1, 1] onto [0, 1]."""
    return (cosine_sim + 1) / 2


def batch_cosine_similarity(
    query: Vector,
    vectors: Sequence[Vector],
    magnitudes: Optional[Sequence[Optional[float]]] = None,
) -> list[float]:
    query_magnitude = calculate_magnitude(query)

    out: list[float] = []
    for i, vector in enumerate(vectors):
        cached = magnitudes[i] if magnitudes is not None and i < len(magnitudes) else None
        if cached:
            out.append(cosine_similarity_with_magnitude(query, vector, query_magnitude, cached))
        else:
            out.append(cosine_similarity(query, vector))
    return out


def top_k_similar(
    query: Vector,
    candidates: Iterable[HasEmbedding],
    k: int,
    threshold: float = 0.0,
) -> list[ScoredResult]:
    """
    Rank ``candidates`` by cosine similarity to ``query``.

    Candidates below ``threshold`` are dropped (a score equal to the threshold
    is kept). Ties keep the order in which candidates were given, since
    ``list.sort`` is stable.
    """
    check_threshold(threshold)
    if k <= 0:
        return []

    query_magnitude = calculate_magnitude(query)

    scored: list[ScoredResult] = []
    for candidate in candidates:
        magnitude = getattr(candidate, "magnitude", None)
        if magnitude:
            similarity = cosine_similarity_with_magnitude(
                query, candidate.embedding, query_magnitude, magnitude
            )
        else:
            similarity = cosine_similarity(query, candidate.embedding)

        if similarity >= threshold:
            scored.append(
                ScoredResult(
                    candidate_id=candidate.id,
                    similarity=similarity,
                    payload=getattr(candidate, "payload", None) or {},
                )
            )

    scored.sort(key=lambda r: r.similarity, reverse=True)
    return scored[:k]


def calculate_centroid(vectors: Sequence[Vector]) -> list[float]:
    if not vectors:
        raise EmptyInput("Cannot calculate centroid of empty vector set")

    dimensions = len(vectors[0])
    centroid = [0.0] * dimensions
    for vector in vectors:
        if len(vector) != dimensions:
            raise DimensionMismatch(dimensions, len(vector))
        for i, value in enumerate(vector):
            centroid[i] += value

    return [value / len(vectors) for value in centroid]


def check_threshold(threshold: float) -> None:
    # NaN would compare False against every score
    if not _is_number(threshold) or not math.isfinite(threshold):
        raise ValueError(f"threshold must be a finite number, got {threshold!r}")


def _is_number(value: object) -> bool:
    # bool is an int subclass but not a vector component
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_vector(vector: object, expected_dims: Optional[int] = None) -> bool:
    if not isinstance(vector, SequenceABC) or isinstance(vector, (str, bytes)):
        return False

    if expected_dims is not None and len(vector) != expected_dims:
        return False

    return all(_is_number(v) and math.isfinite(v) for v in vector)


def ensure_valid_vector(vector: object, expected_dims: Optional[int] = None) -> None:
    """Raise instead of returning False; the error says what to fix."""
    if not isinstance(vector, SequenceABC) or isinstance(vector, (str, bytes)):
        raise InvalidVector(f"Expected a sequence of numbers, got {type(vector).__name__}")

    if expected_dims is not None and len(vector) != expected_dims:
        raise DimensionMismatch(expected_dims, len(vector))

    for i, v in enumerate(vector):
        if not _is_number(v):
            raise InvalidVector(f"Vector entry {i} is not a number: {v!r}")
        if not math.isfinite(v):
            raise InvalidVector(f"Vector entry {i} is not finite: {v!r}")


def chunk_list(items: Sequence[T], size: int) -> list[list[T]]:
    if size <= 0:
        raise ValueError("size must be greater than 0")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
