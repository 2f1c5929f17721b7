from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from memory_rag.core.models import CandidateRecord, ScoredResult, SearchResponse, Vector
from memory_rag.core.vectors import (
    calculate_magnitude,
    check_threshold,
    cosine_similarity_with_magnitude,
    ensure_valid_vector,
    top_k_similar,
)


logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.7


def check_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")


class SimilaritySearchEngine:
    """
    Brute-force cosine ranking over a bounded candidate window.

    The engine holds no per-query state, so a single instance can serve
    concurrent callers. Candidates are borrowed read-only; their stored
    magnitudes are used as-is.
    """

    def __init__(
        self,
        *,
        expected_dims: Optional[int] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.expected_dims = expected_dims
        self._timer = timer

    def validate_query(self, query: Vector) -> None:
        ensure_valid_vector(query, self.expected_dims)

    def search(
        self,
        query: Vector,
        candidates: Sequence[CandidateRecord],
        *,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> SearchResponse:
        started = self._timer()
        self.validate_query(query)
        check_limit(limit)
        check_threshold(threshold)

        results = self.rank(query, candidates, limit=limit, threshold=threshold)

        timing_ms = (self._timer() - started) * 1000.0
        logger.debug(
            "similarity search scanned=%d kept=%d limit=%d threshold=%.3f took=%.2fms",
            len(candidates),
            len(results),
            limit,
            threshold,
            timing_ms,
        )
        return SearchResponse(results=results, timing_ms=timing_ms)

    def rank(
        self,
        query: Vector,
        candidates: Sequence[CandidateRecord],
        *,
        limit: int,
        threshold: float,
    ) -> list[ScoredResult]:
        """Score, threshold, sort and truncate. Assumes ``query`` was validated."""
        check_threshold(threshold)
        query_magnitude = calculate_magnitude(query)

        scored: list[ScoredResult] = []
        for candidate in candidates:
            similarity = cosine_similarity_with_magnitude(
                query,
                candidate.embedding,
                query_magnitude,
                candidate.magnitude or 0.0,
            )
            if similarity < threshold:
                continue
            scored.append(
                ScoredResult(candidate_id=candidate.id, similarity=similarity, payload=candidate.payload)
            )

        # stable: equal scores stay in scan order (newest insert first)
        scored.sort(key=lambda r: r.similarity, reverse=True)
        return scored[:limit]

    def top_k_offline(
        self,
        query: Vector,
        candidates: Sequence[CandidateRecord],
        k: int,
        threshold: float = 0.0,
    ) -> list[ScoredResult]:
        self.validate_query(query)
        return top_k_similar(query, candidates, k, threshold)
