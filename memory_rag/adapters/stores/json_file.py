from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from memory_rag.adapters.stores.in_memory import InMemoryStore
from memory_rag.core.models import Chunk, ChunkEmbedding, Document, VectorMemory


logger = logging.getLogger(__name__)

_TABLES: dict[str, type] = {
    "documents": Document,
    "chunks": Chunk,
    "chunk_embeddings": ChunkEmbedding,
    "memories": VectorMemory,
}


class JsonFileStore(InMemoryStore):
    """
    InMemoryStore that loads from and saves to a single JSON file.

    Lets the CLI keep state between runs. Magnitudes are written out with the
    vectors and read back as-is.
    """

    def __init__(self, path: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.path = Path(path)
        if self.path.exists():
            self.load()

    def load(self) -> None:
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        snapshot = {
            table: [cls(**row) for row in raw.get(table, [])]
            for table, cls in _TABLES.items()
        }
        self.restore(snapshot)
        logger.info(
            "loaded store from %s (%d documents, %d chunk embeddings, %d memories)",
            self.path,
            len(snapshot["documents"]),
            len(snapshot["chunk_embeddings"]),
            len(snapshot["memories"]),
        )

    def save(self) -> None:
        snapshot = self.snapshot()
        payload = {table: [asdict(row) for row in rows] for table, rows in snapshot.items()}

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("saved store to %s", self.path)
