from __future__ import annotations

from typing import Optional


class MemoryRagError(Exception):
    """Base class for errors raised by memory_rag."""


class VectorError(MemoryRagError, ValueError):
    """Input vector was rejected before any scan started."""


class DimensionMismatch(VectorError):
    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"Vector dimension mismatch: expected {expected}, got {actual}")


class InvalidVector(VectorError):
    pass


class EmptyInput(VectorError):
    pass


class InvalidCursor(MemoryRagError, ValueError):
    pass


class RecordNotFound(MemoryRagError, KeyError):
    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return self.args[0]


class EmbeddingError(MemoryRagError):
    pass


class EmbeddingConfigError(EmbeddingError):
    pass


class EmbeddingAPIError(EmbeddingError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Voyage AI API error: {status_code} - {body}")

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500
