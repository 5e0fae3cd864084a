"""The per-document processing pipeline run by job-queue workers.

Processing is split in two so the job queue can decide, under the job's
lock, whether the result may still be written:

    run()      load original bytes -> extract text -> chunk -> orchestrate
               extraction -> derive system entities.  Writes nothing.
    persist()  save chunks, aggregate, entities, text and counts and mark
               the document COMPLETED, all in one storage write.

Every write in ``persist`` has replace semantics, so persisting the same
document twice (a retried job) leaves one copy of each result.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from docmap.interfaces.blob_provider import IBlobProvider
from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import Chunk, Document
from docmap.models.extraction import DocumentAggregate
from docmap.models.job import Job, ProcessingStage
from docmap.models.systems_map import SystemEntity
from docmap.pipeline.progress_tracker import ProgressTracker
from docmap.services.chunker import TextChunker
from docmap.services.entity_deriver import derive_entities
from docmap.services.extraction_orchestrator import CancelCheck, ExtractionOrchestrator
from docmap.services.text_extractor import ExtractedText, TextExtractor
from docmap.utils.errors import DocumentValidationError
from docmap.utils.logging import get_logger

# Share of the progress bar given to chunk extraction (10% -> 90%).
_EXTRACTION_START = 10.0
_EXTRACTION_SPAN = 80.0


@dataclass(frozen=True)
class PipelineResult:
    """Everything ``run`` produced for one document, ready to persist."""

    document: Document
    extracted: ExtractedText
    chunks: list[Chunk]
    aggregate: DocumentAggregate
    entities: list[SystemEntity] = field(default_factory=list)


class DocumentPipeline:
    """Loads, chunks and extracts one document; persists the result on request."""

    def __init__(
        self,
        storage: IStorageProvider,
        blob_store: IBlobProvider,
        chunker: TextChunker,
        orchestrator: ExtractionOrchestrator,
        progress_tracker: ProgressTracker,
        text_extractor: TextExtractor | None = None,
    ) -> None:
        self._storage = storage
        self._blob_store = blob_store
        self._chunker = chunker
        self._orchestrator = orchestrator
        self._progress = progress_tracker
        self._text_extractor = text_extractor or TextExtractor()
        self._logger = get_logger(__name__)

    async def run(self, job: Job, is_cancelled: CancelCheck | None = None) -> PipelineResult:
        """Process the job's document without writing anything.

        Raises
        ------
        DocumentValidationError
            If the document or its original bytes are missing.
        TextExtractionError
            If the bytes cannot be turned into text.
        ExtractionError
            If too few chunks yielded a result.
        JobCancelledError
            If cancellation was observed between chunk calls.
        """
        document = await self._storage.get_document(job.document_id)
        if document is None:
            raise DocumentValidationError(message=f"Document {job.document_id} no longer exists")

        await self._progress.update(
            job.job_id, ProcessingStage.LOADING, 2.0, f"Loading {document.display_name}"
        )
        data = await self._blob_store.get_original_bytes(document.document_id)
        if not data:
            raise DocumentValidationError(
                message=f"No original content stored for {document.document_id}"
            )

        # PDF parsing is CPU-bound.
        extracted = await asyncio.to_thread(
            self._text_extractor.extract, data, document.content_type
        )

        await self._progress.update(
            job.job_id, ProcessingStage.CHUNKING, 5.0, "Splitting text into chunks"
        )
        chunks = self._chunker.chunk(extracted.text, document_id=document.document_id)

        async def _on_progress(percent: float, message: str) -> None:
            await self._progress.update(
                job.job_id,
                ProcessingStage.EXTRACTING,
                _EXTRACTION_START + percent / 100.0 * _EXTRACTION_SPAN,
                message,
            )

        await self._progress.update(
            job.job_id,
            ProcessingStage.EXTRACTING,
            _EXTRACTION_START,
            f"Extracting {len(chunks)} chunks",
        )
        aggregate = await self._orchestrator.process_document(
            document,
            chunks,
            progress_callback=_on_progress,
            is_cancelled=is_cancelled,
            min_success_ratio=job.options.min_success_ratio,
        )
        entities = derive_entities(aggregate)

        self._logger.info(
            "document_processed",
            job_id=job.job_id,
            document_id=document.document_id,
            chunks=len(chunks),
            entities=len(entities),
        )
        return PipelineResult(
            document=document,
            extracted=extracted,
            chunks=chunks,
            aggregate=aggregate,
            entities=entities,
        )

    async def persist(self, job: Job, result: PipelineResult) -> Document:
        """Write the result and mark the document COMPLETED."""
        document_id = result.document.document_id
        await self._progress.update(
            job.job_id, ProcessingStage.PERSISTING, 95.0, "Saving results"
        )
        document = await self._storage.save_results(
            document_id,
            chunks=result.chunks,
            aggregate=result.aggregate,
            entities=result.entities,
            full_text=result.extracted.text,
            word_count=result.extracted.word_count,
            page_count=result.extracted.page_count,
        )
        await self._progress.update(job.job_id, ProcessingStage.DONE, 100.0, "Completed")
        return document
