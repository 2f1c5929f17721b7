from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from memory_rag.core.errors import InvalidCursor


@dataclass(frozen=True, order=True)
class Cursor:
    """
    Keyset position in the ``(inserted_at desc, id desc)`` candidate scan.

    Callers only ever see the encoded string and must not parse it. It marks
    where the underlying scan stopped, not a position in ranked output.
    """
    inserted_at: int
    record_id: str

    def encode(self) -> str:
        return f"{self.inserted_at}:{self.record_id}"

    @classmethod
    def decode(cls, token: str) -> "Cursor":
        if not isinstance(token, str) or ":" not in token:
            raise InvalidCursor(f"Malformed cursor: {token!r}")

        ts_part, record_id = token.split(":", 1)
        try:
            inserted_at = int(ts_part)
        except ValueError as exc:
            raise InvalidCursor(f"Malformed cursor timestamp: {token!r}") from exc
        if not record_id:
            raise InvalidCursor(f"Malformed cursor id: {token!r}")

        return cls(inserted_at=inserted_at, record_id=record_id)

    @classmethod
    def parse_optional(cls, token: Optional[str]) -> Optional["Cursor"]:
        if token is None or token == "":
            return None
        return cls.decode(token)

    def as_key(self) -> tuple[int, str]:
        return (self.inserted_at, self.record_id)
