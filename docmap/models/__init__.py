"""docmap domain models, re-exported for convenience.

The models are organized across four submodules by domain concern:
    - document.py    -- Submitted documents and the chunks cut from them
    - extraction.py  -- Per-chunk extraction results, provider attempts and
                        per-document aggregates
    - job.py         -- Job queue state (jobs, options, filters, stats)
    - systems_map.py -- System entities and the graph built from them

If you add a new model class, add it to ``__all__`` too.
"""

from __future__ import annotations

from docmap.models.document import (
    SUPPORTED_CONTENT_TYPES,
    Chunk,
    Document,
    DocumentStatus,
)
from docmap.models.extraction import (
    AggregatedInsight,
    AggregatedKeyword,
    AggregatedQuote,
    AggregatedTheme,
    AttemptOutcome,
    ChunkFailure,
    DocumentAggregate,
    ExtractionOutcome,
    ExtractionResult,
    Insight,
    Keyword,
    ProviderAttempt,
    Quote,
    Theme,
)
from docmap.models.job import (
    Job,
    JobFilter,
    JobOptions,
    JobPriority,
    JobStats,
    JobStatus,
    ProcessingStage,
)
from docmap.models.systems_map import (
    GraphFilters,
    MapEdge,
    MapGranularity,
    MapNode,
    SystemEntity,
    SystemEntityType,
    SystemsMap,
)

__all__ = [
    "SUPPORTED_CONTENT_TYPES",
    "AggregatedInsight",
    "AggregatedKeyword",
    "AggregatedQuote",
    "AggregatedTheme",
    "AttemptOutcome",
    "Chunk",
    "ChunkFailure",
    "Document",
    "DocumentAggregate",
    "DocumentStatus",
    "ExtractionOutcome",
    "ExtractionResult",
    "GraphFilters",
    "Insight",
    "Job",
    "JobFilter",
    "JobOptions",
    "JobPriority",
    "JobStats",
    "JobStatus",
    "Keyword",
    "MapEdge",
    "MapGranularity",
    "MapNode",
    "ProcessingStage",
    "ProviderAttempt",
    "Quote",
    "SystemEntity",
    "SystemEntityType",
    "SystemsMap",
    "Theme",
]
