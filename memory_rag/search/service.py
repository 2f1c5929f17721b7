from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional, Protocol, Sequence

from memory_rag.core.interfaces import CandidateReader
from memory_rag.core.models import (
    CandidateFilter,
    CandidateRecord,
    Chunk,
    ChunkEmbedding,
    Document,
    PaginatedSearchResponse,
    ScoredResult,
    SearchResponse,
    SimilarChunksResponse,
    Vector,
)
from memory_rag.core.vectors import check_threshold
from memory_rag.search.engine import DEFAULT_LIMIT, DEFAULT_THRESHOLD, SimilaritySearchEngine, check_limit
from memory_rag.search.pagination import DEFAULT_SCAN_CAP, PaginatedSearch


logger = logging.getLogger(__name__)

SIMILAR_CHUNKS_LIMIT = 5
SIMILAR_CHUNKS_THRESHOLD = 0.8


class SearchableStore(CandidateReader, Protocol):
    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        ...

    def get_document(self, document_id: str) -> Optional[Document]:
        ...

    def get_chunk_embedding(self, chunk_id: str) -> Optional[ChunkEmbedding]:
        ...

    def update_access_counts(self, memory_ids: list[str]) -> int:
        ...


class SearchService:
    """
    The search operations exposed to callers.

    Every call validates the query vector before reading storage, fetches at
    most ``scan_cap`` candidates, and ranks them with the shared engine.
    Storage errors propagate unchanged.
    """

    def __init__(
        self,
        store: SearchableStore,
        *,
        engine: Optional[SimilaritySearchEngine] = None,
        expected_dims: Optional[int] = None,
        scan_cap: int = DEFAULT_SCAN_CAP,
        default_limit: int = DEFAULT_LIMIT,
        default_threshold: float = DEFAULT_THRESHOLD,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.store = store
        self.engine = engine or SimilaritySearchEngine(expected_dims=expected_dims, timer=timer)
        self.scan_cap = scan_cap
        self.default_limit = default_limit
        self.default_threshold = default_threshold
        self._timer = timer
        self.pager = PaginatedSearch(store, self.engine, scan_cap=scan_cap, timer=timer)

    def _defaults(self, limit: Optional[int], threshold: Optional[float]) -> tuple[int, float]:
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold
        check_limit(limit)
        check_threshold(threshold)
        return limit, threshold

    def similarity_search(
        self,
        query: Vector,
        *,
        memory_type: Optional[str] = None,
        agent_id: Optional[str] = None,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> SearchResponse:
        """Rank stored vector memories, optionally scoped by type and owning agent."""
        started = self._timer()
        self.engine.validate_query(query)
        limit, threshold = self._defaults(limit, threshold)

        candidates = self.store.fetch_candidates(
            CandidateFilter(source="memories", memory_type=memory_type, agent_id=agent_id),
            self.scan_cap,
        )
        results = self.engine.rank(query, candidates, limit=limit, threshold=threshold)
        return SearchResponse(results=results, timing_ms=self._elapsed(started, "memories", candidates, results))

    def search_chunks(
        self,
        query: Vector,
        *,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> SearchResponse:
        """Rank chunks that carry their own embedding; results include chunk and document."""
        started = self._timer()
        self.engine.validate_query(query)
        limit, threshold = self._defaults(limit, threshold)

        candidates = self.store.fetch_candidates(CandidateFilter(source="chunks"), self.scan_cap)
        results = self._with_chunks(self.engine.rank(query, candidates, limit=limit, threshold=threshold))
        return SearchResponse(results=results, timing_ms=self._elapsed(started, "chunks", candidates, results))

    def paginated_similarity_search(
        self,
        query: Vector,
        *,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
        cursor: Optional[str] = None,
        model: Optional[str] = None,
    ) -> PaginatedSearchResponse:
        limit, threshold = self._defaults(limit, threshold)
        page = self.pager.search_page(query, limit=limit, threshold=threshold, cursor=cursor, model=model)
        return replace(page, results=self._with_chunks(page.results))

    def get_similar_chunks(
        self,
        chunk_id: str,
        *,
        limit: int = SIMILAR_CHUNKS_LIMIT,
        threshold: float = SIMILAR_CHUNKS_THRESHOLD,
    ) -> SimilarChunksResponse:
        source = self.store.get_chunk_embedding(chunk_id)
        if source is None:
            return SimilarChunksResponse(results=[], message="No embedding found for this chunk")

        page = self.paginated_similarity_search(
            source.embedding, limit=limit, threshold=threshold, model=source.model
        )
        results = [r for r in page.results if r.payload.get("chunk_id") != chunk_id]
        return SimilarChunksResponse(results=results, source_model=source.model, timing_ms=page.timing_ms)

    def top_k_offline(
        self,
        query: Vector,
        candidates: Sequence[CandidateRecord],
        k: int,
        threshold: float = 0.0,
    ) -> list[ScoredResult]:
        return self.engine.top_k_offline(query, candidates, k, threshold)

    def update_access_counts(self, memory_ids: list[str]) -> int:
        return self.store.update_access_counts(memory_ids)

    def _with_chunks(self, results: list[ScoredResult]) -> list[ScoredResult]:
        documents: dict[str, Optional[Document]] = {}
        out: list[ScoredResult] = []
        for r in results:
            chunk = self.store.get_chunk(r.payload.get("chunk_id", r.candidate_id))
            document = None
            if chunk is not None:
                if chunk.document_id not in documents:
                    documents[chunk.document_id] = self.store.get_document(chunk.document_id)
                document = documents[chunk.document_id]
            out.append(replace(r, payload={**r.payload, "chunk": chunk, "document": document}))
        return out

    def _elapsed(
        self,
        started: float,
        source: str,
        candidates: Sequence[CandidateRecord],
        results: Sequence[ScoredResult],
    ) -> float:
        timing_ms = (self._timer() - started) * 1000.0
        logger.debug(
            "%s search scanned=%d kept=%d took=%.2fms", source, len(candidates), len(results), timing_ms
        )
        return timing_ms
