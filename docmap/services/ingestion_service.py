"""Submission entry point: store a new document and queue it for processing.

This is the boundary where input errors are caught.  Empty files,
unsupported content types and content that cannot be read as its type
(invalid UTF-8, a corrupt PDF) raise :class:`DocumentValidationError`
before anything is stored, so a rejected submission leaves no document and
no job behind.
"""

from __future__ import annotations

import asyncio
import uuid

from docmap.interfaces.blob_provider import IBlobProvider
from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import SUPPORTED_CONTENT_TYPES, Document
from docmap.models.job import JobOptions
from docmap.pipeline.job_queue import JobQueue
from docmap.services.text_extractor import TextExtractor, detect_content_type
from docmap.utils.errors import DocumentValidationError, TextExtractionError
from docmap.utils.logging import get_logger


class IngestionService:
    """Accepts uploaded documents and hands them to the job queue."""

    def __init__(
        self,
        storage: IStorageProvider,
        blob_store: IBlobProvider,
        job_queue: JobQueue,
        text_extractor: TextExtractor | None = None,
    ) -> None:
        self._storage = storage
        self._blob_store = blob_store
        self._job_queue = job_queue
        self._text_extractor = text_extractor or TextExtractor()
        self._logger = get_logger(__name__)

    async def submit(
        self,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        title: str | None = None,
        source: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        options: JobOptions | None = None,
    ) -> tuple[Document, str]:
        """Store *data* as a new document and enqueue a processing job.

        Parameters
        ----------
        filename:
            Original file name; its extension is used to detect the type.
        data:
            The document's bytes.
        content_type:
            Declared MIME type, if the caller knows it.
        title, source, category, tags:
            Descriptive metadata stored with the document.
        options:
            Job options (priority, AI requirement, attempt cap).

        Returns
        -------
        tuple[Document, str]
            The stored document and the id of its job.

        Raises
        ------
        DocumentValidationError
            If the file is empty, of an unsupported type, or unreadable as
            its type.
        """
        if not data:
            raise DocumentValidationError(message=f"{filename} is empty")
        resolved_type = detect_content_type(filename, data, declared=content_type)
        if resolved_type not in SUPPORTED_CONTENT_TYPES:
            raise DocumentValidationError(
                message=f"Unsupported file type for {filename}: {resolved_type or 'unknown'}"
            )
        try:
            await asyncio.to_thread(self._text_extractor.extract, data, resolved_type)
        except TextExtractionError as exc:
            raise DocumentValidationError(
                message=f"{filename} is malformed: {exc.message}"
            ) from exc

        document = Document(
            document_id=uuid.uuid4().hex,
            filename=filename,
            content_type=resolved_type,
            size_bytes=len(data),
            title=title,
            source=source,
            category=category,
            tags=list(tags or []),
        )
        await self._blob_store.put_original_bytes(document.document_id, data)
        document = await self._storage.create_document(document)
        job_id = await self._job_queue.enqueue(document.document_id, options)

        self._logger.info(
            "document_submitted",
            document_id=document.document_id,
            filename=filename,
            content_type=resolved_type,
            size_bytes=len(data),
            job_id=job_id,
        )
        return document, job_id
