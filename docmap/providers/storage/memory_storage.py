"""In-memory storage provider.

Keeps documents, chunks, aggregates and entities in plain dicts.  Nothing
survives the process; used by tests and by ``STORAGE_BACKEND=memory``.
Returned lists are fresh copies, and every stored model is frozen, so
callers cannot mutate the store behind its back.
"""

from __future__ import annotations

import structlog

from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import Chunk, Document, DocumentStatus, utc_now
from docmap.models.extraction import DocumentAggregate
from docmap.models.systems_map import SystemEntity
from docmap.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class InMemoryStorageProvider(IStorageProvider):
    """Dict-backed implementation of :class:`IStorageProvider`."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[Chunk]] = {}
        self._aggregates: dict[str, DocumentAggregate] = {}
        self._entities: dict[str, list[SystemEntity]] = {}

    async def initialize(self) -> None:
        logger.debug("memory_storage_initialized")

    # -- Documents -----------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        if document.document_id in self._documents:
            raise StorageError(
                message=f"Document {document.document_id} already exists",
                provider_name="memory",
            )
        self._documents[document.document_id] = document
        return document

    async def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        docs = [
            d for d in self._documents.values() if status is None or d.status is status
        ]
        return sorted(docs, key=lambda d: (d.uploaded_at, d.document_id))

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document:
        document = self._require(document_id)
        update: dict = {
            "status": status,
            "error_message": error_message if status is DocumentStatus.FAILED else None,
        }
        if status is DocumentStatus.COMPLETED:
            update["processed_at"] = utc_now()
        updated = document.model_copy(update=update)
        self._documents[document_id] = updated
        return updated

    async def update_document_text(
        self,
        document_id: str,
        full_text: str,
        word_count: int,
        page_count: int,
    ) -> Document:
        document = self._require(document_id)
        updated = document.model_copy(
            update={"full_text": full_text, "word_count": word_count, "page_count": page_count}
        )
        self._documents[document_id] = updated
        return updated

    # -- Chunks --------------------------------------------------------------

    async def save_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        self._require(document_id)
        self._chunks[document_id] = sorted(chunks, key=lambda c: c.index)

    async def get_chunks(self, document_id: str) -> list[Chunk]:
        return list(self._chunks.get(document_id, []))

    # -- Aggregates & entities -----------------------------------------------

    async def save_aggregates(
        self,
        aggregate: DocumentAggregate,
        entities: list[SystemEntity],
    ) -> None:
        self._require(aggregate.document_id)
        self._aggregates[aggregate.document_id] = aggregate
        self._entities[aggregate.document_id] = list(entities)

    async def save_results(
        self,
        document_id: str,
        chunks: list[Chunk],
        aggregate: DocumentAggregate,
        entities: list[SystemEntity],
        full_text: str,
        word_count: int,
        page_count: int,
    ) -> Document:
        document = self._require(document_id)
        updated = document.model_copy(
            update={
                "full_text": full_text,
                "word_count": word_count,
                "page_count": page_count,
                "status": DocumentStatus.COMPLETED,
                "error_message": None,
                "processed_at": utc_now(),
            }
        )
        self._chunks[document_id] = sorted(chunks, key=lambda c: c.index)
        self._aggregates[document_id] = aggregate
        self._entities[document_id] = list(entities)
        self._documents[document_id] = updated
        return updated

    async def get_aggregate(self, document_id: str) -> DocumentAggregate | None:
        return self._aggregates.get(document_id)

    async def get_entities(self, document_ids: list[str]) -> list[SystemEntity]:
        entities: list[SystemEntity] = []
        for document_id in dict.fromkeys(document_ids):
            entities.extend(self._entities.get(document_id, []))
        return entities

    def _require(self, document_id: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise StorageError(
                message=f"Document {document_id} not found",
                provider_name="memory",
            )
        return document
