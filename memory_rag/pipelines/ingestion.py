from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from memory_rag.adapters.chunking.word_chunker import WordChunker
from memory_rag.adapters.extractors.registry import ExtractorRegistry
from memory_rag.adapters.extractors.text_extractor import doc_type_for_extension
from memory_rag.core.clock import now_ms
from memory_rag.core.interfaces import Chunker, ContentSource, DocumentStore, Embedder
from memory_rag.core.models import Metadata
from memory_rag.core.vectors import chunk_list


logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    document_id: str
    chunks_created: int
    embeddings_created: int
    processing_time_ms: float
    chunks_deleted: int = 0


@dataclass
class IngestionStats:
    items_seen: int = 0
    docs_extracted: int = 0
    docs_indexed: int = 0
    chunks_created: int = 0
    chunks_indexed: int = 0
    failures: list[str] = field(default_factory=list)


class IngestionPipeline:
    """
    Document -> word chunks -> embeddings -> stored chunk embeddings.

    A document moves new -> processing -> indexed; any failure while
    processing marks it ``error`` and the exception is re-raised.
    """

    def __init__(
        self,
        *,
        store: DocumentStore,
        chunker: Chunker,
        embedder: Embedder,
        source: Optional[ContentSource] = None,
        extractor_registry: Optional[ExtractorRegistry] = None,
        batch_size: int = 128,
        clock: Callable[[], int] = now_ms,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than 0")
        self.store = store
        self.chunker = chunker
        self.embedder = embedder
        self.source = source
        self.extractor_registry = extractor_registry
        self.batch_size = batch_size
        self._clock = clock

    def _chunker_for(self, chunk_size: Optional[int], chunk_overlap: Optional[int]) -> Chunker:
        if chunk_size is None and chunk_overlap is None:
            return self.chunker
        return WordChunker(
            chunk_size=chunk_size if chunk_size is not None else getattr(self.chunker, "chunk_size", 512),
            chunk_overlap=chunk_overlap if chunk_overlap is not None else getattr(self.chunker, "chunk_overlap", 128),
        )

    def process_document(
        self,
        document_id: str,
        *,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        embedder: Optional[Embedder] = None,
    ) -> ProcessResult:
        """
        Chunk and embed one stored document.

        Chunks left over from an earlier run are deleted first, so every chunk
        ends up with exactly one embedding. ``chunk_size``/``chunk_overlap``
        and ``embedder`` override the pipeline's own for this call.
        """
        started = time.perf_counter()
        doc = self.store.require_document(document_id)
        chunker = self._chunker_for(chunk_size, chunk_overlap)
        embedder = embedder or self.embedder

        try:
            if not doc.content:
                raise ValueError(f"Document has no content: {document_id}")
            deleted = self.store.delete_document_chunks(doc.id)
            chunks = chunker.chunk(doc.id, doc.content, created_at=self._clock())
            for c in chunks:
                md = dict(c.metadata or {})
                md["content_hash"] = hashlib.sha256(c.content.encode("utf-8")).hexdigest()
                c.metadata = md
                self.store.add_chunk(c)
            self.store.update_document_status(doc.id, "processing")

            embeddings_created = 0
            for batch in chunk_list(chunks, self.batch_size):
                results = embedder.embed_batch([c.content for c in batch])
                self.store.batch_store_chunk_embeddings(
                    [(c.id, r) for c, r in zip(batch, results)]
                )
                embeddings_created += len(results)

            self.store.update_document_status(doc.id, "indexed", indexed_at=self._clock())
        except Exception:
            logger.exception("processing failed for document %s", document_id)
            self.store.update_document_status(doc.id, "error")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "indexed document %s: %d chunks, %d embeddings in %.1fms",
            doc.id,
            len(chunks),
            embeddings_created,
            elapsed_ms,
        )
        return ProcessResult(
            document_id=doc.id,
            chunks_created=len(chunks),
            embeddings_created=embeddings_created,
            processing_time_ms=elapsed_ms,
            chunks_deleted=deleted,
        )

    def rechunk_document(
        self,
        document_id: str,
        *,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        embedder: Optional[Embedder] = None,
    ) -> ProcessResult:
        """Replace a document's chunks and embeddings using new chunking parameters or a new embedder."""
        return self.process_document(
            document_id, chunk_size=chunk_size, chunk_overlap=chunk_overlap, embedder=embedder
        )

    def ingest_file(
        self,
        path: str,
        title: str,
        metadata: Optional[Metadata] = None,
        **overrides: Any,
    ) -> ProcessResult:
        """Store one file as a document under ``title`` and index it."""
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        data = file_path.read_bytes()
        document_id = self.store.create_document(
            title=title,
            doc_type=doc_type_for_extension(file_path.suffix),
            content=data.decode("utf-8", errors="ignore"),
            source_url=str(file_path.resolve()),
            external_id=f"book-{self._clock()}",
            file_size=len(data),
            metadata={
                **(metadata or {}),
                "original_path": str(path),
                "ingestion_date": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("ingesting %s as document %s (%d bytes)", path, document_id, len(data))
        return self.process_document(document_id, **overrides)

    def run(self) -> IngestionStats:
        if self.source is None or self.extractor_registry is None:
            raise ValueError("run() needs both a source and an extractor_registry")

        stats = IngestionStats()
        for item in self.source.iter_items():
            stats.items_seen += 1

            try:
                extracted = self.extractor_registry.extract(item)
            except Exception:
                logger.exception("extraction failed for %s", item.uri)
                stats.failures.append(item.uri)
                continue

            stats.docs_extracted += 1
            document_id = self.store.create_document(
                title=extracted.title,
                doc_type=extracted.doc_type,
                content=extracted.content,
                source_url=item.uri,
                external_id=f"batch-{self._clock()}-{stats.items_seen - 1}",
                metadata=extracted.metadata,
                file_size=extracted.metadata.get("file_size"),
            )

            try:
                result = self.process_document(document_id)
            except Exception:
                # already logged and marked as error
                stats.failures.append(item.uri)
                continue

            stats.docs_indexed += 1
            stats.chunks_created += result.chunks_created
            stats.chunks_indexed += result.embeddings_created

        return stats
