from __future__ import annotations

import hashlib

from memory_rag.core.models import EmbeddingResult
from memory_rag.core.vectors import calculate_magnitude, normalize_vector


class DummyHashEmbedder:
    """
    Deterministic embedder for smoke testing WITHOUT external services.
    Hashes each lower-cased word into one of ``dim`` buckets, then L2-normalizes.
    """

    def __init__(self, dim: int = 64, model: str = "dummy-hash"):
        self.dim = dim
        self.model = model

    def embed(self, text: str) -> EmbeddingResult:
        vector = self._embed_one(text)
        return EmbeddingResult(
            embedding=vector,
            magnitude=calculate_magnitude(vector),
            model=self.model,
            dimensions=self.dim,
        )

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        return [self.embed(t) for t in texts]

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self._embed_one(t) for t in texts]

    def _embed_one(self, text: str) -> list[float]:
        v = [0.0] * self.dim
        if not text:
            return v

        # Hash into buckets
        for token in text.lower().split():
            h = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(h[:2], "big") % self.dim
            v[idx] += 1.0

        return list(normalize_vector(v))
