from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

from bs4 import BeautifulSoup

from memory_rag.adapters.extractors.text_extractor import decode_text, title_from_filename
from memory_rag.core.models import ExtractedText, SourceItem


@dataclass
class HtmlExtractor:
    def can_handle(self, mime_type: str) -> bool:
        return mime_type in {"text/html", "application/xhtml+xml"}

    def extract(self, item: SourceItem) -> ExtractedText:
        soup = BeautifulSoup(decode_text(item), "html.parser")

        # Remove scripts/styles for cleaner text
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        text = soup.get_text(separator="\n")
        text = "\n".join(line.strip() for line in text.splitlines() if line.strip())

        page_title = (soup.title.string or "") if soup.title else ""
        metadata = {**item.metadata}
        if page_title := page_title.strip():
            metadata["title"] = page_title
        else:
            page_title = title_from_filename(item.metadata.get("filename") or PurePath(item.uri).name)

        return ExtractedText(
            uri=item.uri,
            title=page_title,
            content=text,
            doc_type="web",
            mime_type=item.mime_type,
            metadata=metadata,
        )
