"""Filesystem blob provider.

Stores each document's original bytes as ``<blob_dir>/<document_id>.bin``.
File I/O runs in a worker thread via ``asyncio.to_thread`` so large uploads
never block the event loop.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import structlog

from docmap.interfaces.blob_provider import IBlobProvider
from docmap.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

# Document ids become file names, so only a conservative alphabet is allowed.
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalBlobProvider(IBlobProvider):
    """Blob storage in a local directory."""

    def __init__(self, base_dir: str | Path = "data/blobs") -> None:
        self._base_dir = Path(base_dir)

    def _path_for(self, document_id: str) -> Path:
        if not _SAFE_ID_RE.match(document_id) or document_id in {".", ".."}:
            raise StorageError(
                message=f"Invalid document id for blob storage: {document_id!r}",
                provider_name="local_blob",
            )
        return self._base_dir / f"{document_id}.bin"

    async def put_original_bytes(self, document_id: str, data: bytes) -> None:
        path = self._path_for(document_id)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(
                message=f"Could not write blob for {document_id}: {exc}",
                provider_name="local_blob",
            ) from exc
        logger.debug("blob_stored", document_id=document_id, size_bytes=len(data))

    async def get_original_bytes(self, document_id: str) -> bytes | None:
        path = self._path_for(document_id)

        def _read() -> bytes | None:
            if not path.exists():
                return None
            return path.read_bytes()

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            raise StorageError(
                message=f"Could not read blob for {document_id}: {exc}",
                provider_name="local_blob",
            ) from exc
