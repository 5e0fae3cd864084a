"""Unit tests for IngestionService — submission validation and hand-off."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest

from docmap.models.job import JobOptions, JobPriority
from docmap.pipeline.job_queue import JobQueue
from docmap.services.ingestion_service import IngestionService
from docmap.utils.errors import DocumentValidationError


def _pdf_bytes(text: str) -> bytes:
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _service(memory_storage, blob_store) -> tuple[IngestionService, MagicMock]:
    job_queue = MagicMock(spec=JobQueue)
    job_queue.enqueue = AsyncMock(return_value="job-1")
    return IngestionService(memory_storage, blob_store, job_queue), job_queue


class TestSubmit:
    @pytest.mark.asyncio
    async def test_stores_document_and_enqueues(self, memory_storage, blob_store) -> None:
        service, job_queue = _service(memory_storage, blob_store)
        options = JobOptions(priority=JobPriority.HIGH)

        document, job_id = await service.submit(
            "notes.md",
            b"# Notes\n\nSome text.",
            title="Field notes",
            tags=["youth", "transport"],
            options=options,
        )

        assert job_id == "job-1"
        assert document.content_type == "text/markdown"
        assert document.size_bytes == 19
        assert document.tags == ["youth", "transport"]
        assert await memory_storage.get_document(document.document_id) == document
        assert await blob_store.get_original_bytes(document.document_id) == b"# Notes\n\nSome text."
        job_queue.enqueue.assert_awaited_once_with(document.document_id, options)

    @pytest.mark.asyncio
    async def test_pdf_detected_from_magic(self, memory_storage, blob_store) -> None:
        service, _ = _service(memory_storage, blob_store)
        document, _ = await service.submit("upload.bin", _pdf_bytes("Survey results"))
        assert document.content_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_declared_type_used(self, memory_storage, blob_store) -> None:
        service, _ = _service(memory_storage, blob_store)
        document, _ = await service.submit(
            "upload", b"plain words", content_type="text/plain; charset=utf-8"
        )
        assert document.content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_each_submission_gets_new_id(self, memory_storage, blob_store) -> None:
        service, _ = _service(memory_storage, blob_store)
        first, _ = await service.submit("a.txt", b"same")
        second, _ = await service.submit("a.txt", b"same")
        assert first.document_id != second.document_id

    @pytest.mark.asyncio
    async def test_empty_file_rejected(self, memory_storage, blob_store) -> None:
        service, job_queue = _service(memory_storage, blob_store)
        with pytest.raises(DocumentValidationError):
            await service.submit("empty.txt", b"")
        assert await memory_storage.list_documents() == []
        job_queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected(self, memory_storage, blob_store) -> None:
        service, job_queue = _service(memory_storage, blob_store)
        with pytest.raises(DocumentValidationError, match="Unsupported file type"):
            await service.submit("photo.jpg", b"\xff\xd8\xff\xe0")
        with pytest.raises(DocumentValidationError):
            await service.submit("data.csv", b"a,b", content_type="text/csv")
        assert await memory_storage.list_documents() == []
        job_queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_utf8_rejected(self, memory_storage, blob_store) -> None:
        service, job_queue = _service(memory_storage, blob_store)
        with pytest.raises(DocumentValidationError, match="malformed"):
            await service.submit("bad.txt", b"\xff\xfe\xfa\x80 not utf8")
        assert await memory_storage.list_documents() == []
        job_queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_corrupt_pdf_rejected(self, memory_storage, blob_store) -> None:
        service, job_queue = _service(memory_storage, blob_store)
        with pytest.raises(DocumentValidationError, match="malformed"):
            await service.submit("bad.pdf", b"%PDF-1.7 garbage")
        assert await memory_storage.list_documents() == []
        job_queue.enqueue.assert_not_awaited()
