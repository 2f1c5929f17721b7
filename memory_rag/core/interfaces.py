from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence, runtime_checkable

from memory_rag.core.models import (
    CandidateFilter,
    CandidateRecord,
    Chunk,
    Document,
    EmbeddingResult,
    ExtractedText,
    Metadata,
    SourceItem,
)


@runtime_checkable
class HasEmbedding(Protocol):
    id: str
    embedding: Sequence[float]


@runtime_checkable
class ContentSource(Protocol):
    def iter_items(self) -> Iterable[SourceItem]:
        ...


@runtime_checkable
class Extractor(Protocol):
    def can_handle(self, mime_type: str) -> bool:
        ...

    def extract(self, item: SourceItem) -> ExtractedText:
        ...


@runtime_checkable
class Chunker(Protocol):
    def chunk(self, document_id: str, text: str, *, created_at: int = 0) -> list[Chunk]:
        ...


@runtime_checkable
class Embedder(Protocol):
    model: str

    def embed(self, text: str) -> EmbeddingResult:
        ...

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        ...


@runtime_checkable
class CandidateReader(Protocol):
    """
    Read side of the storage layer as seen by the search engine.

    Records come back ordered by ``(inserted_at desc, id desc)``, at most
    ``cap`` of them, strictly after ``cursor`` when one is given.
    """

    def fetch_candidates(
        self,
        filters: CandidateFilter,
        cap: int,
        cursor: Optional[tuple[int, str]] = None,
    ) -> list[CandidateRecord]:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    def create_document(
        self,
        *,
        title: str,
        doc_type: str = "text",
        content: Optional[str] = None,
        source_url: Optional[str] = None,
        external_id: Optional[str] = None,
        metadata: Optional[Metadata] = None,
        file_size: Optional[int] = None,
        language: Optional[str] = None,
    ) -> str:
        ...

    def require_document(self, document_id: str) -> Document:
        ...

    def update_document_status(
        self, document_id: str, status: str, *, indexed_at: Optional[int] = None
    ) -> None:
        ...

    def delete_document_chunks(self, document_id: str) -> int:
        ...

    def add_chunk(self, chunk: Chunk) -> str:
        ...

    def batch_store_chunk_embeddings(
        self, items: list[tuple[str, EmbeddingResult]]
    ) -> list[str]:
        ...


@runtime_checkable
class MemoryWriterStore(Protocol):
    def store_vector_memory(
        self,
        *,
        memory_type: str,
        content: str,
        embedding: list[float],
        embedding_model: str,
        metadata: Optional[Metadata] = None,
        importance_score: Optional[float] = None,
        agent_id: Optional[str] = None,
    ) -> str:
        ...
