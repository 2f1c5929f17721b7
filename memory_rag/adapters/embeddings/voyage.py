from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from memory_rag.adapters.embeddings.cache import EmbeddingCache
from memory_rag.adapters.embeddings.retry import RetryPolicy
from memory_rag.core.errors import EmbeddingAPIError, EmbeddingConfigError, EmbeddingError
from memory_rag.core.models import EmbeddingResult
from memory_rag.core.vectors import calculate_magnitude, chunk_list


logger = logging.getLogger(__name__)

VOYAGE_API_URL = "https://api.voyageai.com/v1/embeddings"
VOYAGE_MODEL = "voyage-3.5"
VOYAGE_BATCH_LIMIT = 128


def _to_result(embedding: list[float], model: str) -> EmbeddingResult:
    # magnitude computed once here and carried to storage with the vector
    return EmbeddingResult(
        embedding=embedding,
        magnitude=calculate_magnitude(embedding),
        model=model,
        dimensions=len(embedding),
    )


@dataclass
class VoyageEmbedder:
    api_key: Optional[str]
    model: str = VOYAGE_MODEL
    api_url: str = VOYAGE_API_URL
    batch_size: int = VOYAGE_BATCH_LIMIT
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    cache: Optional[EmbeddingCache] = None
    client: Optional[httpx.Client] = None

    def __post_init__(self) -> None:
        if not self.api_key:
            raise EmbeddingConfigError("VOYAGE_AI_API_KEY is not set")
        if not 0 < self.batch_size <= VOYAGE_BATCH_LIMIT:
            raise ValueError(f"batch_size must be between 1 and {VOYAGE_BATCH_LIMIT}")
        if self.client is None:
            self.client = httpx.Client(timeout=httpx.Timeout(self.timeout_seconds))

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def embed(self, text: str) -> EmbeddingResult:
        return self.embed_batch([text])[0]

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [r.embedding for r in self.embed_batch(texts)]

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        results: list[Optional[EmbeddingResult]] = [None] * len(texts)

        missing: list[int] = []
        for i, text in enumerate(texts):
            cached = self.cache.get((self.model, text)) if self.cache is not None else None
            if cached is not None:
                results[i] = cached
            else:
                missing.append(i)

        for batch in chunk_list(missing, self.batch_size):
            vectors = self.retry.call(lambda: self._request([texts[i] for i in batch]))
            for i, vector in zip(batch, vectors):
                result = _to_result(vector, self.model)
                results[i] = result
                if self.cache is not None:
                    self.cache.set((self.model, texts[i]), result)

        return [r for r in results if r is not None]

    def _request(self, inputs: list[str]) -> list[list[float]]:
        resp = self.client.post(
            self.api_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            json={"input": inputs, "model": self.model},
        )
        if resp.status_code >= 400:
            raise EmbeddingAPIError(resp.status_code, resp.text)

        data = resp.json().get("data") or []
        if len(data) != len(inputs):
            raise EmbeddingError(f"Expected {len(inputs)} embeddings, got {len(data)}")

        # the API may return items out of order
        ordered = sorted(data, key=lambda item: item.get("index", 0))
        logger.debug("embedded %d texts with %s", len(inputs), self.model)
        return [item["embedding"] for item in ordered]
