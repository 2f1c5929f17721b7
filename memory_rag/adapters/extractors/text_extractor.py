from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath

from memory_rag.core.models import ExtractedText, SourceItem


_DOC_TYPES_BY_EXTENSION = {
    ".txt": "text",
    ".md": "markdown",
    ".html": "web",
    ".htm": "web",
    ".json": "text",
    ".pdf": "pdf",
    ".epub": "epub",
}


def title_from_filename(name: str) -> str:
    """'my-book_notes.md' -> 'My Book Notes'"""
    stem = PurePath(name).stem
    spaced = re.sub(r"[-_]", " ", stem)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def doc_type_for_extension(ext: str) -> str:
    return _DOC_TYPES_BY_EXTENSION.get(ext.lower(), "text")


def doc_type_for(item: SourceItem) -> str:
    return doc_type_for_extension(str(item.metadata.get("extension") or PurePath(item.uri).suffix))


def decode_text(item: SourceItem) -> str:
    if isinstance(item.data, bytes):
        return item.data.decode("utf-8", errors="ignore")
    return item.data


@dataclass
class TextExtractor:
    def can_handle(self, mime_type: str) -> bool:
        return mime_type.startswith("text/") or mime_type in {"application/json", "application/xml"}

    def extract(self, item: SourceItem) -> ExtractedText:
        name = item.metadata.get("filename") or PurePath(item.uri).name
        return ExtractedText(
            uri=item.uri,
            title=title_from_filename(name),
            content=decode_text(item),
            doc_type=doc_type_for(item),
            mime_type=item.mime_type,
            metadata=dict(item.metadata),
        )
