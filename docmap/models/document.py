"""Document and chunk models.

A :class:`Document` is created by the ingestion boundary when a file is
submitted.  Its ``status`` is advanced by the job queue and its counts and
text are filled in by the result persister once processing succeeds.

A :class:`Chunk` is a bounded, contiguous slice of a document's full text
and the unit of AI extraction.  Chunks are produced once per processing
run by :class:`~docmap.services.chunker.TextChunker` and never modified.
All models use frozen config; updates go through ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class DocumentStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Lifecycle of a document as seen by the storage layer."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Content types the text extractor knows how to read.
SUPPORTED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "text/plain",
        "text/markdown",
    }
)


class Document(BaseModel):
    """A submitted document and its processing status."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    filename: str
    content_type: str = "text/plain"
    size_bytes: int = Field(default=0, ge=0)
    title: str | None = None
    source: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    # Filled in once text has been extracted.
    full_text: str = ""
    word_count: int = Field(default=0, ge=0)
    page_count: int = Field(default=0, ge=0)
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: datetime = Field(default_factory=utc_now)
    processed_at: datetime | None = None
    error_message: str | None = None

    @property
    def display_name(self) -> str:
        """Title when known, otherwise the filename; used as prompt context."""
        return self.title or self.filename


class Chunk(BaseModel):
    """A contiguous slice of a document's full text.

    ``text`` is exactly ``full_text[start_char:end_char]``; offsets are
    character (code point) offsets, not byte offsets.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = ""
    index: int = Field(ge=0)
    text: str
    start_char: int = Field(ge=0)
    end_char: int = Field(ge=0)
    word_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_offsets(self) -> Chunk:
        if self.end_char <= self.start_char:
            raise ValueError("end_char must be greater than start_char")
        return self

    @property
    def char_count(self) -> int:
        return self.end_char - self.start_char
