from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Callable, Optional

from memory_rag.core.clock import now_ms
from memory_rag.core.errors import RecordNotFound
from memory_rag.core.models import (
    DOC_STATUSES,
    DOC_TYPES,
    MEMORY_TYPES,
    CandidateFilter,
    CandidateRecord,
    Chunk,
    ChunkEmbedding,
    Document,
    DocumentPage,
    EmbeddingResult,
    Metadata,
    VectorMemory,
)
from memory_rag.core.vectors import calculate_magnitude
from memory_rag.search.cursor import Cursor


logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStore:
    """
    Process-local storage for documents, chunks, chunk embeddings and vector memories.

    Every write path that stores a vector computes its magnitude once and keeps
    it on the record; readers never recompute it. Each chunk has at most one
    embedding row; storing again replaces it.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()

        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, Chunk] = {}
        self._chunk_embeddings: list[ChunkEmbedding] = []
        self._memories: dict[str, VectorMemory] = {}

    # -------------------
    # Documents
    # -------------------
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
        if doc_type not in DOC_TYPES:
            raise ValueError(f"Unknown doc_type: {doc_type}")

        now = self._clock()
        doc = Document(
            id=self._id_factory(),
            title=title,
            doc_type=doc_type,
            status="new",
            created_at=now,
            updated_at=now,
            content=content,
            source_url=source_url,
            external_id=external_id,
            language=language or "en",
            file_size=file_size,
            search_text=f"{title} {content or ''}"[:1000],
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._documents[doc.id] = doc
        return doc.id

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def require_document(self, document_id: str) -> Document:
        doc = self.get_document(document_id)
        if doc is None:
            raise RecordNotFound("document", document_id)
        return doc

    def list_documents(self, *, limit: int = 10, status: Optional[str] = None) -> list[Document]:
        return self.list_documents_page(limit=limit, status=status).documents

    def list_documents_page(
        self,
        *,
        limit: int = 10,
        status: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> DocumentPage:
        """
        Documents in creation order, ``limit`` at a time.

        ``next_cursor`` is set whenever the page is full; pass it back to get
        the documents created after the last one returned.
        """
        if limit <= 0:
            raise ValueError("limit must be greater than 0")
        after = Cursor.parse_optional(cursor)

        with self._lock:
            docs = list(self._documents.values())
        if status is not None:
            docs = [d for d in docs if d.status == status]
        docs.sort(key=lambda d: (d.created_at, d.id))
        if after is not None:
            docs = [d for d in docs if (d.created_at, d.id) > after.as_key()]

        page = docs[:limit]
        next_cursor = None
        if len(page) == limit:
            last = page[-1]
            next_cursor = Cursor(inserted_at=last.created_at, record_id=last.id).encode()
        return DocumentPage(documents=page, next_cursor=next_cursor)

    def search_documents(self, query: str, *, limit: int = 10) -> list[Document]:
        """Case-insensitive term match over title + leading content."""
        terms = [t for t in query.lower().split() if t]
        if not terms:
            return []
        with self._lock:
            docs = list(self._documents.values())
        hits = [d for d in docs if all(t in (d.search_text or "").lower() for t in terms)]
        return hits[:limit]

    def update_document_status(
        self,
        document_id: str,
        status: str,
        *,
        indexed_at: Optional[int] = None,
    ) -> None:
        if status not in DOC_STATUSES:
            raise ValueError(f"Unknown document status: {status}")

        with self._lock:
            doc = self.require_document(document_id)
            doc.status = status
            doc.updated_at = self._clock()
            if indexed_at is not None:
                doc.indexed_at = indexed_at
            elif status == "indexed":
                doc.indexed_at = doc.updated_at

    def delete_document(self, document_id: str) -> int:
        """Delete a document with its chunks and their embeddings; returns chunks deleted."""
        with self._lock:
            self.require_document(document_id)
            deleted = self.delete_document_chunks(document_id)
            del self._documents[document_id]
        return deleted

    # -------------------
    # Chunks
    # -------------------
    def add_chunk(self, chunk: Chunk) -> str:
        with self._lock:
            self.require_document(chunk.document_id)
            self._chunks[chunk.id] = chunk
        return chunk.id

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        return self._chunks.get(chunk_id)

    def list_chunks(self, document_id: str) -> list[Chunk]:
        with self._lock:
            chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def delete_document_chunks(self, document_id: str) -> int:
        with self._lock:
            chunk_ids = {cid for cid, c in self._chunks.items() if c.document_id == document_id}
            self._chunk_embeddings = [e for e in self._chunk_embeddings if e.chunk_id not in chunk_ids]
            for cid in chunk_ids:
                del self._chunks[cid]
        logger.debug("deleted %d chunks for document %s", len(chunk_ids), document_id)
        return len(chunk_ids)

    def store_chunk_with_embedding(
        self,
        *,
        document_id: str,
        chunk_index: int,
        content: str,
        embedding: list[float],
        embedding_model: str,
        tokens: Optional[int] = None,
        start_char: Optional[int] = None,
        end_char: Optional[int] = None,
        metadata: Optional[Metadata] = None,
    ) -> str:
        """Store a chunk that carries its own embedding and magnitude."""
        chunk = Chunk(
            id=self._id_factory(),
            document_id=document_id,
            chunk_index=chunk_index,
            content=content,
            created_at=self._clock(),
            tokens=tokens,
            start_char=start_char,
            end_char=end_char,
            metadata=dict(metadata or {}),
            embedding=list(embedding),
            embedding_model=embedding_model,
            embedding_dimensions=len(embedding),
            magnitude=calculate_magnitude(embedding),
        )
        return self.add_chunk(chunk)

    # -------------------
    # Chunk embeddings
    # -------------------
    def store_chunk_embedding(
        self,
        chunk_id: str,
        embedding: list[float],
        model: str,
        dimensions: Optional[int] = None,
    ) -> str:
        magnitude = calculate_magnitude(embedding)
        dims = dimensions if dimensions is not None else len(embedding)

        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                raise RecordNotFound("chunk", chunk_id)

            record = ChunkEmbedding(
                id=self._id_factory(),
                chunk_id=chunk_id,
                embedding=list(embedding),
                magnitude=magnitude,
                model=model,
                dimensions=dims,
                created_at=self._clock(),
            )
            self._chunk_embeddings = [e for e in self._chunk_embeddings if e.chunk_id != chunk_id]
            self._chunk_embeddings.append(record)
            chunk.embedding_model = model
            chunk.embedding_dimensions = dims
            chunk.magnitude = magnitude
        return record.id

    def batch_store_chunk_embeddings(self, items: list[tuple[str, EmbeddingResult]]) -> list[str]:
        with self._lock:
            return [
                self.store_chunk_embedding(chunk_id, result.embedding, result.model, result.dimensions)
                for chunk_id, result in items
            ]

    def get_chunk_embedding(self, chunk_id: str) -> Optional[ChunkEmbedding]:
        with self._lock:
            for record in self._chunk_embeddings:
                if record.chunk_id == chunk_id:
                    return record
        return None

    # -------------------
    # Vector memories
    # -------------------
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
        if memory_type not in MEMORY_TYPES:
            raise ValueError(f"Unknown memory_type: {memory_type}")

        now = self._clock()
        memory = VectorMemory(
            id=self._id_factory(),
            memory_type=memory_type,
            content=content,
            embedding=list(embedding),
            embedding_model=embedding_model,
            magnitude=calculate_magnitude(embedding),
            created_at=now,
            updated_at=now,
            last_accessed_at=now,
            importance_score=0.5 if importance_score is None else importance_score,
            agent_id=agent_id,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._memories[memory.id] = memory
        return memory.id

    def get_vector_memory(self, memory_id: str) -> Optional[VectorMemory]:
        return self._memories.get(memory_id)

    def list_vector_memories(
        self,
        *,
        memory_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[VectorMemory]:
        with self._lock:
            memories = list(self._memories.values())
        if memory_type is not None:
            memories = [m for m in memories if m.memory_type == memory_type]
        return memories[:limit]

    def update_access_counts(self, memory_ids: list[str]) -> int:
        """Bookkeeping only; ranking never reads these fields."""
        now = self._clock()
        updated = 0
        with self._lock:
            for memory_id in memory_ids:
                memory = self._memories.get(memory_id)
                if memory is None:
                    continue
                memory.access_count += 1
                memory.last_accessed_at = now
                updated += 1
        return updated

    # -------------------
    # Candidate reader
    # -------------------
    def fetch_candidates(
        self,
        filters: CandidateFilter,
        cap: int,
        cursor: Optional[tuple[int, str]] = None,
    ) -> list[CandidateRecord]:
        with self._lock:
            if filters.source == "chunk_embeddings":
                records = [
                    self._embedding_candidate(e)
                    for e in self._chunk_embeddings
                    if filters.model is None or e.model == filters.model
                ]
            elif filters.source == "chunks":
                records = [
                    self._chunk_candidate(c)
                    for c in self._chunks.values()
                    if c.embedding is not None
                    and c.magnitude is not None
                    and (filters.model is None or c.embedding_model == filters.model)
                ]
            elif filters.source == "memories":
                records = [
                    self._memory_candidate(m)
                    for m in self._memories.values()
                    if (filters.memory_type is None or m.memory_type == filters.memory_type)
                    and (filters.agent_id is None or m.agent_id == filters.agent_id)
                ]
            else:
                raise ValueError(f"Unknown candidate source: {filters.source}")

        if cursor is not None:
            # keyset: (t, id) strictly before the cursor in descending order
            records = [r for r in records if (r.inserted_at, r.id) < cursor]

        records.sort(key=lambda r: (r.inserted_at, r.id), reverse=True)
        return records[:cap]

    @staticmethod
    def _embedding_candidate(record: ChunkEmbedding) -> CandidateRecord:
        return CandidateRecord(
            id=record.id,
            embedding=record.embedding,
            magnitude=record.magnitude,
            inserted_at=record.created_at,
            payload={"chunk_id": record.chunk_id, "model": record.model},
        )

    @staticmethod
    def _chunk_candidate(chunk: Chunk) -> CandidateRecord:
        return CandidateRecord(
            id=chunk.id,
            embedding=chunk.embedding or [],
            magnitude=chunk.magnitude,
            inserted_at=chunk.created_at,
            payload={
                "chunk_id": chunk.id,
                "document_id": chunk.document_id,
                "chunk_index": chunk.chunk_index,
                "content": chunk.content,
            },
        )

    @staticmethod
    def _memory_candidate(memory: VectorMemory) -> CandidateRecord:
        return CandidateRecord(
            id=memory.id,
            embedding=memory.embedding,
            magnitude=memory.magnitude,
            inserted_at=memory.created_at,
            payload={
                "memory_type": memory.memory_type,
                "content": memory.content,
                "agent_id": memory.agent_id,
                "embedding_model": memory.embedding_model,
                "importance_score": memory.importance_score,
                "metadata": dict(memory.metadata),
            },
        )

    # -------------------
    # Snapshots
    # -------------------
    def snapshot(self) -> dict[str, list]:
        with self._lock:
            return {
                "documents": [replace(d) for d in self._documents.values()],
                "chunks": [replace(c) for c in self._chunks.values()],
                "chunk_embeddings": list(self._chunk_embeddings),
                "memories": [replace(m) for m in self._memories.values()],
            }

    def restore(self, snapshot: dict[str, list]) -> None:
        with self._lock:
            self._documents = {d.id: d for d in snapshot.get("documents", [])}
            self._chunks = {c.id: c for c in snapshot.get("chunks", [])}
            self._chunk_embeddings = list(snapshot.get("chunk_embeddings", []))
            self._memories = {m.id: m for m in snapshot.get("memories", [])}
