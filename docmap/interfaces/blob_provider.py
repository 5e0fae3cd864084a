"""Abstract base class for original-document byte storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalBlobProvider (docmap/providers/blob/)
class IBlobProvider(ABC):
    """Contract for storing the original bytes of submitted documents."""

    @abstractmethod
    async def put_original_bytes(self, document_id: str, data: bytes) -> None:
        """Store *data* as the original content of *document_id*, replacing any previous copy."""

    @abstractmethod
    async def get_original_bytes(self, document_id: str) -> bytes | None:
        """Return the stored bytes, or ``None`` when nothing was stored."""
