from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional

from memory_rag.core.interfaces import CandidateReader
from memory_rag.core.models import CandidateFilter, PaginatedSearchResponse, Vector
from memory_rag.core.vectors import check_threshold
from memory_rag.search.cursor import Cursor
from memory_rag.search.engine import DEFAULT_LIMIT, DEFAULT_THRESHOLD, SimilaritySearchEngine, check_limit


logger = logging.getLogger(__name__)

DEFAULT_SCAN_CAP = 1000


class PaginatedSearch:
    """
    Keyset pagination over the insertion-ordered candidate scan.

    Each page fetches up to ``scan_cap`` candidates after the cursor and ranks
    only that window. The next cursor comes from the last *scanned* record, so
    it does not depend on threshold or limit. Ranking is per page: the best
    results across all pages are not merged.
    """

    def __init__(
        self,
        reader: CandidateReader,
        engine: SimilaritySearchEngine,
        *,
        scan_cap: int = DEFAULT_SCAN_CAP,
        timer: Callable[[], float] = time.perf_counter,
    ):
        if scan_cap <= 0:
            raise ValueError("scan_cap must be greater than 0")
        self.reader = reader
        self.engine = engine
        self.scan_cap = scan_cap
        self._timer = timer

    def search_page(
        self,
        query: Vector,
        *,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        cursor: Optional[str] = None,
        model: Optional[str] = None,
    ) -> PaginatedSearchResponse:
        started = self._timer()

        # validate before touching storage
        self.engine.validate_query(query)
        check_limit(limit)
        check_threshold(threshold)
        position = Cursor.parse_optional(cursor)

        window = self.reader.fetch_candidates(
            CandidateFilter(source="chunk_embeddings", model=model),
            self.scan_cap,
            position.as_key() if position else None,
        )

        results = self.engine.rank(query, window, limit=limit, threshold=threshold)

        has_more = len(window) >= self.scan_cap
        next_cursor: Optional[str] = None
        if has_more:
            last = window[-1]
            next_cursor = Cursor(inserted_at=last.inserted_at, record_id=last.id).encode()

        timing_ms = (self._timer() - started) * 1000.0
        logger.debug(
            "paginated search window=%d kept=%d has_more=%s took=%.2fms",
            len(window),
            len(results),
            has_more,
            timing_ms,
        )
        return PaginatedSearchResponse(
            results=results,
            next_cursor=next_cursor,
            has_more=has_more,
            timing_ms=timing_ms,
        )

    def iter_pages(
        self,
        query: Vector,
        *,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        cursor: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Iterator[PaginatedSearchResponse]:
        while True:
            page = self.search_page(
                query, limit=limit, threshold=threshold, cursor=cursor, model=model
            )
            yield page
            if not page.has_more:
                return
            cursor = page.next_cursor
