from __future__ import annotations

import json
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from memory_rag.core.models import SourceItem


logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".txt", ".md", ".json", ".html", ".htm")

_MIME_OVERRIDES = {
    ".md": "text/markdown",
    ".json": "application/json",
}

_YEAR = re.compile(r"(\d{4})")


def _file_metadata(path: Path, data: bytes) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "source": "local_folder",
        "filename": path.name,
        "extension": path.suffix.lower(),
        "file_size": len(data),
        "imported_at": datetime.now(timezone.utc).isoformat(),
    }

    # e.g. "2023_AuthorName_BookTitle.txt"
    year = _YEAR.search(path.name)
    if year:
        metadata["year"] = int(year.group(1))

    if path.suffix.lower() == ".json":
        try:
            parsed = json.loads(data.decode("utf-8", errors="ignore"))
        except ValueError:
            logger.warning("could not parse JSON metadata from %s", path)
        else:
            if isinstance(parsed, dict) and isinstance(parsed.get("metadata"), dict):
                metadata.update(parsed["metadata"])

    return metadata


@dataclass
class LocalFolderSource:
    root: str
    recursive: bool = True
    extensions: tuple[str, ...] = field(default=SUPPORTED_EXTENSIONS)

    def iter_items(self) -> Iterable[SourceItem]:
        base = Path(self.root)
        if not base.exists():
            raise FileNotFoundError(f"LocalFolderSource root does not exist: {self.root}")

        pattern = "**/*" if self.recursive else "*"
        for path in sorted(base.glob(pattern)):
            if not path.is_file():
                continue
            if path.suffix.lower() not in self.extensions:
                continue

            mime = _MIME_OVERRIDES.get(path.suffix.lower())
            if mime is None:
                mime, _ = mimetypes.guess_type(str(path))
            mime_type = mime or "text/plain"

            data = path.read_bytes()

            yield SourceItem(
                uri=str(path.resolve()),
                data=data,
                mime_type=mime_type,
                metadata=_file_metadata(path, data),
            )
