"""Extraction models: per-chunk results and per-document aggregates.

Two levels of structured knowledge flow through the pipeline:

* :class:`ExtractionResult` — what one provider call returned for one
  chunk.  Transient: it only lives until the orchestrator merges it.
* :class:`DocumentAggregate` — the deduplicated union of every chunk's
  result for a document.  This is what gets persisted.  Every aggregated
  item keeps ``source_chunks`` (the chunk indices it was seen in) and a
  merged confidence (maximum across duplicates).

The provider-attempt models record how the router got (or failed to get)
each chunk result, so failures are visible per chunk instead of being
escalated to the whole document.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Chunk-level items (as returned by a provider, after normalization)
# ---------------------------------------------------------------------------
class Theme(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    speaker: str | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Insight(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    category: str = "general"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Keyword(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str
    category: str = "topic"
    frequency: int = Field(default=1, ge=1)


class ExtractionResult(BaseModel):
    """Structured knowledge extracted from a single chunk."""

    model_config = ConfigDict(frozen=True)

    themes: list[Theme] = Field(default_factory=list)
    quotes: list[Quote] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)
    keywords: list[Keyword] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.themes or self.quotes or self.insights or self.keywords)


# ---------------------------------------------------------------------------
# Provider attempts
# ---------------------------------------------------------------------------
class AttemptOutcome(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """How a single provider call ended."""

    SUCCESS = "SUCCESS"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    PARSE_FAILURE = "PARSE_FAILURE"


class ProviderAttempt(BaseModel):
    """Record of one call to one provider for one chunk."""

    model_config = ConfigDict(frozen=True)

    provider_name: str
    outcome: AttemptOutcome
    error: str | None = None
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    result: ExtractionResult | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS


class ExtractionOutcome(BaseModel):
    """Result of routing one chunk through the provider fallback chain.

    ``result`` is ``None`` when no provider produced a structured result
    (all failed, or none was available).  ``attempts`` lists every call
    made, in order.
    """

    model_config = ConfigDict(frozen=True)

    result: ExtractionResult | None = None
    provider_name: str | None = None
    attempts: list[ProviderAttempt] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    @property
    def attempted_providers(self) -> list[str]:
        return [a.provider_name for a in self.attempts]


class ChunkFailure(BaseModel):
    """A chunk for which every provider failed."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    attempts: list[ProviderAttempt] = Field(default_factory=list)
    reason: str = "no structured result"


# ---------------------------------------------------------------------------
# Document-level aggregates
# ---------------------------------------------------------------------------
class AggregatedTheme(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    source_chunks: list[int] = Field(default_factory=list)


class AggregatedQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    text: str
    speaker: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    source_chunks: list[int] = Field(default_factory=list)


class AggregatedInsight(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    text: str
    category: str = "general"
    confidence: float = Field(ge=0.0, le=1.0)
    source_chunks: list[int] = Field(default_factory=list)


class AggregatedKeyword(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    term: str
    category: str = "topic"
    frequency: int = Field(ge=1)
    source_chunks: list[int] = Field(default_factory=list)


class DocumentAggregate(BaseModel):
    """Deduplicated union of all chunk results for one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    themes: list[AggregatedTheme] = Field(default_factory=list)
    quotes: list[AggregatedQuote] = Field(default_factory=list)
    insights: list[AggregatedInsight] = Field(default_factory=list)
    keywords: list[AggregatedKeyword] = Field(default_factory=list)
    chunks_total: int = Field(default=0, ge=0)
    chunks_succeeded: int = Field(default=0, ge=0)
    chunk_failures: list[ChunkFailure] = Field(default_factory=list)
    providers_used: list[str] = Field(default_factory=list)

    @property
    def success_ratio(self) -> float:
        """Share of chunks that produced a result (1.0 for zero chunks)."""
        if self.chunks_total == 0:
            return 1.0
        return self.chunks_succeeded / self.chunks_total
