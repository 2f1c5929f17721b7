from __future__ import annotations

import math
import uuid

from memory_rag.core.models import Chunk


class WordChunker:
    """
    Word-based chunking with overlap, sized in approximate tokens.

    Token counts are estimated from word counts (``words_per_token`` words per
    token); this is not a real tokenizer.
    """

    def __init__(self, chunk_size: int = 512, chunk_overlap: int = 128, words_per_token: float = 0.75):
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.words_per_token = words_per_token
        self.words_per_chunk = math.floor(chunk_size * words_per_token)
        self.overlap_words = math.floor(chunk_overlap * words_per_token)
        if self.words_per_chunk <= 0:
            raise ValueError("chunk_size is too small to hold a single word")
        if self.overlap_words >= self.words_per_chunk:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

    def chunk(self, document_id: str, text: str, *, created_at: int = 0) -> list[Chunk]:
        words = (text or "").split()
        if not words:
            return []

        chunks: list[Chunk] = []
        step = self.words_per_chunk - self.overlap_words
        chunk_index = 0

        for i in range(0, len(words), step):
            chunk_words = words[i : i + self.words_per_chunk]
            content = " ".join(chunk_words)
            if not content.strip():
                continue

            start_char = len(" ".join(words[:i])) + (1 if i > 0 else 0)
            tokens = math.floor(len(chunk_words) / self.words_per_token)
            cid = str(uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:{chunk_index}:{i}"))
            chunks.append(
                Chunk(
                    id=cid,
                    document_id=document_id,
                    chunk_index=chunk_index,
                    content=content,
                    created_at=created_at,
                    tokens=tokens,
                    start_char=start_char,
                    end_char=start_char + len(content),
                    metadata={
                        "chunking_method": "word-based",
                        "chunk_size": self.chunk_size,
                        "chunk_overlap": self.chunk_overlap,
                    },
                )
            )
            chunk_index += 1

        return chunks
