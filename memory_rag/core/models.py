from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Sequence


Metadata = Dict[str, Any]
Vector = Sequence[float]

DocStatus = Literal["new", "processing", "indexed", "error", "archived"]
DocType = Literal["pdf", "web", "text", "code", "markdown", "epub", "other"]
MemoryType = Literal["episodic", "semantic", "procedural"]

DOC_STATUSES: tuple[str, ...] = ("new", "processing", "indexed", "error", "archived")
DOC_TYPES: tuple[str, ...] = ("pdf", "web", "text", "code", "markdown", "epub", "other")
MEMORY_TYPES: tuple[str, ...] = ("episodic", "semantic", "procedural")


@dataclass(frozen=True)
class SourceItem:
    """
    Raw item produced by a ContentSource.
    - uri: where it came from (file path, URL, etc.)
    - data: either bytes or text
    - mime_type: used to select an extractor
    """
    uri: str
    data: bytes | str
    mime_type: str = "text/plain"
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class ExtractedText:
    """
    Readable text pulled out of a SourceItem, before it becomes a stored Document.
    """
    uri: str
    title: str
    content: str
    doc_type: str = "text"
    mime_type: str = "text/plain"
    metadata: Metadata = field(default_factory=dict)


@dataclass
class Document:
    id: str
    title: str
    doc_type: str
    status: str
    created_at: int
    updated_at: int
    content: Optional[str] = None
    source_url: Optional[str] = None
    external_id: Optional[str] = None
    language: str = "en"
    file_size: Optional[int] = None
    indexed_at: Optional[int] = None
    search_text: Optional[str] = None
    metadata: Metadata = field(default_factory=dict)


@dataclass
class Chunk:
    id: str
    document_id: str
    chunk_index: int
    content: str
    created_at: int
    tokens: Optional[int] = None
    start_char: Optional[int] = None
    end_char: Optional[int] = None
    metadata: Metadata = field(default_factory=dict)
    embedding: Optional[list[float]] = None
    embedding_model: Optional[str] = None
    embedding_dimensions: Optional[int] = None
    magnitude: Optional[float] = None


@dataclass(frozen=True)
class ChunkEmbedding:
    """Embedding of one chunk, stored apart from the chunk for scanning."""
    id: str
    chunk_id: str
    embedding: list[float]
    magnitude: float
    model: str
    dimensions: int
    created_at: int


@dataclass
class VectorMemory:
    id: str
    memory_type: str
    content: str
    embedding: list[float]
    embedding_model: str
    magnitude: float
    created_at: int
    updated_at: int
    last_accessed_at: int
    access_count: int = 0
    importance_score: float = 0.5
    confidence_score: float = 0.5
    agent_id: Optional[str] = None
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class CandidateRecord:
    """
    A stored vector handed to the search engine.

    ``magnitude`` must equal the L2 norm of ``embedding``; it is computed once
    at write time and never checked again.
    """
    id: str
    embedding: Vector
    magnitude: Optional[float]
    inserted_at: int = 0
    payload: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class ScoredResult:
    candidate_id: str
    similarity: float
    payload: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResponse:
    results: list[ScoredResult]
    timing_ms: float


@dataclass(frozen=True)
class PaginatedSearchResponse:
    results: list[ScoredResult]
    next_cursor: Optional[str]
    has_more: bool
    timing_ms: float


@dataclass(frozen=True)
class SimilarChunksResponse:
    results: list[ScoredResult]
    source_model: Optional[str] = None
    timing_ms: float = 0.0
    message: Optional[str] = None


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: list[float]
    magnitude: float
    model: str
    dimensions: int


@dataclass(frozen=True)
class CandidateFilter:
    """Equality predicates applied by the storage reader before the cap."""
    source: Literal["chunk_embeddings", "chunks", "memories"] = "chunk_embeddings"
    model: Optional[str] = None
    memory_type: Optional[str] = None
    agent_id: Optional[str] = None


@dataclass(frozen=True)
class DocumentPage:
    documents: list[Document]
    next_cursor: Optional[str] = None
