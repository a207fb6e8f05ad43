"""
Local blob storage for reservation documents.

Layout: ``<root>/users/<owner_id>/docs/<epoch_ms>_<filename>``.  The
returned reference is a ``file://`` URL.  Blocking file I/O runs in a
worker thread so uploads of one submission proceed concurrently.
"""

from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path

from autosub.domain.entities import DocumentFile, UploadError

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(value: str) -> str:
    cleaned = _UNSAFE.sub("_", value).strip("._")
    return cleaned or "document"


class LocalDocumentStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, owner_id: str, document: DocumentFile) -> Path:
        stamp = int(time.time() * 1000)
        return (
            self.root
            / "users"
            / safe_name(owner_id)
            / "docs"
            / f"{stamp}_{document.id[:8]}_{safe_name(document.filename)}"
        )

    async def upload(self, owner_id: str, document: DocumentFile) -> str:
        path = self.path_for(owner_id, document)
        try:
            await asyncio.to_thread(self._write, path, document.content)
        except OSError as exc:
            raise UploadError(f"{document.filename}: {exc}") from exc
        return path.resolve().as_uri()

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
