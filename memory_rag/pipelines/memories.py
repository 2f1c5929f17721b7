from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from memory_rag.core.interfaces import Embedder, MemoryWriterStore
from memory_rag.core.models import MEMORY_TYPES, Metadata


logger = logging.getLogger(__name__)


class MemoryWriter:
    """Embed a piece of agent memory and store it with its magnitude."""

    def __init__(self, *, store: MemoryWriterStore, embedder: Embedder, source: str = "manual_script"):
        self.store = store
        self.embedder = embedder
        self.source = source

    def store_memory(
        self,
        memory_type: str,
        content: str,
        metadata: Optional[Metadata] = None,
        *,
        importance_score: Optional[float] = None,
        agent_id: Optional[str] = None,
    ) -> str:
        if memory_type not in MEMORY_TYPES:
            raise ValueError(f"memory_type must be one of {', '.join(MEMORY_TYPES)}")
        if not content.strip():
            raise ValueError("content must not be empty")

        result = self.embedder.embed(content)
        memory_id = self.store.store_vector_memory(
            memory_type=memory_type,
            content=content,
            embedding=result.embedding,
            embedding_model=result.model,
            metadata={
                **(metadata or {}),
                "stored_at": datetime.now(timezone.utc).isoformat(),
                "source": self.source,
            },
            importance_score=importance_score,
            agent_id=agent_id,
        )
        logger.info(
            "stored %s memory %s (model=%s dims=%d magnitude=%.4f)",
            memory_type,
            memory_id,
            result.model,
            result.dimensions,
            result.magnitude,
        )
        return memory_id
