"""Abstract base class for document and result persistence.

The storage provider is the system of record for documents, their chunks,
the per-document extraction aggregate and the system entities derived from
it.  Writes that belong to one processing run use replace semantics:
saving chunks or aggregates for a document overwrites whatever an earlier
attempt stored, so a retried job never duplicates rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docmap.models.document import Chunk, Document, DocumentStatus
from docmap.models.extraction import DocumentAggregate
from docmap.models.systems_map import SystemEntity


# Concrete implementations: InMemoryStorageProvider, SQLiteStorageProvider
# Located in: docmap/providers/storage/
class IStorageProvider(ABC):
    """Contract for persisting documents and extraction results.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing store (create tables, directories, ...).

        Must be safe to call more than once.
        """

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Store a newly submitted document and return it.

        Raises
        ------
        docmap.utils.errors.StorageError
            If a document with the same id already exists.
        """

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it is unknown."""

    @abstractmethod
    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        """Return documents ordered by upload time, optionally filtered by status."""

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document:
        """Set the document's status.

        ``error_message`` is stored for FAILED and cleared for every other
        status.  ``processed_at`` is stamped when the status is COMPLETED.

        Raises
        ------
        docmap.utils.errors.StorageError
            If the document does not exist.
        """

    @abstractmethod
    async def update_document_text(
        self,
        document_id: str,
        full_text: str,
        word_count: int,
        page_count: int,
    ) -> Document:
        """Record the extracted text and counts for a document."""

    @abstractmethod
    async def save_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        """Replace the document's chunks with *chunks* (kept in index order)."""

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[Chunk]:
        """Return the document's chunks ordered by index."""

    @abstractmethod
    async def save_aggregates(
        self,
        aggregate: DocumentAggregate,
        entities: list[SystemEntity],
    ) -> None:
        """Replace the document's aggregate and its derived system entities."""

    @abstractmethod
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
        """Write one completed processing run as a single unit.

        Replaces the document's chunks, aggregate and entities, records its
        text and counts, and marks it COMPLETED.  Either every part is
        written or none is.

        Raises
        ------
        docmap.utils.errors.StorageError
            If the document does not exist or the write fails.
        """

    @abstractmethod
    async def get_aggregate(self, document_id: str) -> DocumentAggregate | None:
        """Return the stored aggregate, or ``None`` if none was saved."""

    @abstractmethod
    async def get_entities(self, document_ids: list[str]) -> list[SystemEntity]:
        """Return the system entities of every listed document.

        Unknown document ids contribute nothing.
        """
