"""Chunk fan-out and document-level aggregation.

The orchestrator takes a document's chunks, routes every chunk through the
:class:`~docmap.services.provider_router.ProviderRouter`, and merges the
chunk results into one :class:`DocumentAggregate`.

Concurrency
-----------
Chunk calls run concurrently through :func:`throttled_gather` with a
semaphore that is shared by every document in the process, so the total
number of in-flight provider calls is bounded globally rather than per
document.

Partial failure
---------------
A chunk whose providers all failed contributes nothing to the aggregate and
is recorded in ``chunk_failures``.  The document only fails (with
:class:`ExtractionError`) when the share of successful chunks drops below
``min_success_ratio``.

Cancellation
------------
``is_cancelled`` is checked right before each chunk call.  Once it returns
``True`` no further calls start; calls already in flight are allowed to
finish and then :class:`JobCancelledError` is raised.  Partial results are
discarded.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from docmap.models.document import Chunk, Document
from docmap.models.extraction import ChunkFailure, DocumentAggregate, ExtractionOutcome
from docmap.services.aggregate_merger import merge_chunk_results
from docmap.services.provider_router import ProviderRouter
from docmap.utils.concurrency import throttled_gather
from docmap.utils.errors import ExtractionError, JobCancelledError

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[float, str], Awaitable[None]]
CancelCheck = Callable[[], bool]

# Returned for chunks that were never sent because cancellation was seen.
_SKIPPED = object()


class ExtractionOrchestrator:
    """Runs chunk extraction for documents and merges the results.

    Parameters
    ----------
    router:
        Routes each chunk to the available providers.
    semaphore:
        Shared bound on concurrent provider calls.  Pass the same instance
        to every orchestrator in the process.
    min_success_ratio:
        Default floor for ``chunks_succeeded / chunks_total``.
    """

    def __init__(
        self,
        router: ProviderRouter,
        semaphore: asyncio.Semaphore,
        min_success_ratio: float = 0.5,
    ) -> None:
        self._router = router
        self._semaphore = semaphore
        self._min_success_ratio = min_success_ratio

    async def process_document(
        self,
        document: Document,
        chunks: list[Chunk],
        progress_callback: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
        min_success_ratio: float | None = None,
    ) -> DocumentAggregate:
        """Extract every chunk of *document* and merge the results.

        Parameters
        ----------
        document:
            The document being processed; its display name is passed to the
            model as context.
        chunks:
            The document's chunks, in index order.
        progress_callback:
            Awaited with ``(percent, message)`` after each chunk completes.
        is_cancelled:
            Polled before each chunk call.
        min_success_ratio:
            Overrides the orchestrator's default floor for this document.

        Returns
        -------
        DocumentAggregate
            Merged items plus chunk counts, failures and providers used.

        Raises
        ------
        JobCancelledError
            If cancellation was observed.
        ExtractionError
            If too few chunks produced a result.
        """
        floor = self._min_success_ratio if min_success_ratio is None else min_success_ratio
        total = len(chunks)
        if total == 0:
            logger.info("extraction_skipped_no_chunks", document_id=document.document_id)
            return DocumentAggregate(document_id=document.document_id)

        context = _document_context(document)
        completed = 0
        progress_lock = asyncio.Lock()

        async def _run(chunk: Chunk) -> ExtractionOutcome | object:
            nonlocal completed
            if is_cancelled is not None and is_cancelled():
                return _SKIPPED
            outcome = await self._router.extract(chunk.text, context)
            async with progress_lock:
                completed += 1
                if progress_callback is not None:
                    await progress_callback(
                        completed / total * 100.0,
                        f"Extracted chunk {completed} of {total}",
                    )
            return outcome

        logger.info(
            "extraction_started",
            document_id=document.document_id,
            chunks=total,
            providers=self._router.provider_names,
        )
        results = await throttled_gather([_run(c) for c in chunks], self._semaphore)

        if any(r is _SKIPPED for r in results) or (is_cancelled is not None and is_cancelled()):
            logger.info(
                "extraction_cancelled",
                document_id=document.document_id,
                chunks_completed=completed,
            )
            raise JobCancelledError(message=f"Processing of {document.document_id} was cancelled")

        successes = []
        failures: list[ChunkFailure] = []
        providers_used: set[str] = set()
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                failures.append(ChunkFailure(chunk_index=chunk.index, reason=str(result)))
                continue
            if result.succeeded:
                successes.append((chunk.index, result.result))
                providers_used.add(result.provider_name)
            else:
                failures.append(
                    ChunkFailure(
                        chunk_index=chunk.index,
                        attempts=result.attempts,
                        reason=(
                            "all providers failed" if result.attempts else "no provider available"
                        ),
                    )
                )

        aggregate = merge_chunk_results(document.document_id, successes).model_copy(
            update={
                "chunks_total": total,
                "chunks_succeeded": len(successes),
                "chunk_failures": failures,
                "providers_used": sorted(providers_used),
            }
        )

        logger.info(
            "extraction_finished",
            document_id=document.document_id,
            chunks_total=total,
            chunks_succeeded=len(successes),
            themes=len(aggregate.themes),
            quotes=len(aggregate.quotes),
            insights=len(aggregate.insights),
            keywords=len(aggregate.keywords),
        )

        if aggregate.success_ratio < floor:
            raise ExtractionError(
                message=(
                    f"Only {len(successes)} of {total} chunks produced a result "
                    f"(minimum success ratio {floor:.2f})"
                )
            )
        return aggregate


def _document_context(document: Document) -> str:
    parts = [f"Document: {document.display_name}"]
    if document.source:
        parts.append(f"Source: {document.source}")
    if document.category:
        parts.append(f"Category: {document.category}")
    return "; ".join(parts)
