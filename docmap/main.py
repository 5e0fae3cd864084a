"""docmap composition root.

Wires together providers, services and the job queue via dependency
injection.  Nothing here runs at import time: SDK clients, storage
connections and worker tasks are only created when :func:`build_services`
and :func:`start_services` are called, so tests can substitute any
component (most often the LLM providers).

Typical standalone usage::

    services = build_services(load_settings())
    await start_services(services)
    document, job_id = await services["ingestion_service"].submit("a.txt", data)
    job = await services["job_queue"].wait_for(job_id)
    await stop_services(services)
"""

from __future__ import annotations

import asyncio
from typing import Any

from docmap.config.settings import Settings
from docmap.interfaces.llm_provider import ILLMProvider
from docmap.interfaces.storage_provider import IStorageProvider
from docmap.pipeline.document_pipeline import DocumentPipeline
from docmap.pipeline.job_queue import JobQueue
from docmap.pipeline.progress_tracker import ProgressTracker
from docmap.providers.blob.local_blob import LocalBlobProvider
from docmap.providers.llm.anthropic_provider import AnthropicLLMProvider
from docmap.providers.llm.moonshot_provider import MoonshotLLMProvider
from docmap.providers.llm.openai_provider import OpenAILLMProvider
from docmap.providers.storage.memory_storage import InMemoryStorageProvider
from docmap.providers.storage.sqlite_storage import SQLiteStorageProvider
from docmap.services.chunker import ChunkerConfig, SplitStrategy, TextChunker
from docmap.services.extraction_orchestrator import ExtractionOrchestrator
from docmap.services.ingestion_service import IngestionService
from docmap.services.provider_router import ProviderRouter
from docmap.services.systems_map_builder import SystemsMapBuilder, SystemsMapService
from docmap.services.text_extractor import TextExtractor
from docmap.utils.errors import ConfigurationError
from docmap.utils.logging import get_logger

# ---------------------------------------------------------------------------
# LLM providers
# ---------------------------------------------------------------------------


def build_llm_providers(app_settings: Settings) -> list[ILLMProvider]:
    """Construct every LLM provider adapter.

    All three are built whether or not they have credentials; the router
    skips the ones whose ``is_available()`` is ``False``.
    """
    return [
        AnthropicLLMProvider(settings=app_settings),
        OpenAILLMProvider(settings=app_settings),
        MoonshotLLMProvider(settings=app_settings),
    ]


def build_provider_router(
    app_settings: Settings,
    providers: list[ILLMProvider],
) -> ProviderRouter:
    return ProviderRouter(
        providers,
        default_provider=app_settings.default_llm_provider,
        priority=app_settings.llm_provider_priority,
        timeout_seconds=app_settings.llm_timeout_seconds,
        temperature=app_settings.llm_temperature,
        max_tokens=app_settings.llm_max_tokens,
        requests_per_minute=app_settings.llm_requests_per_minute,
    )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def build_storage(app_settings: Settings) -> IStorageProvider:
    """Select the storage backend named by ``storage_backend``.

    Raises
    ------
    ConfigurationError
        If the backend name is not recognised.
    """
    backend = app_settings.storage_backend.lower()
    if backend == "sqlite":
        return SQLiteStorageProvider(db_path=app_settings.sqlite_db_path)
    if backend == "memory":
        return InMemoryStorageProvider()
    raise ConfigurationError(message=f"Unknown storage backend: {app_settings.storage_backend}")


def build_chunker(app_settings: Settings) -> TextChunker:
    try:
        strategy = SplitStrategy(app_settings.chunk_split_strategy.lower())
    except ValueError as exc:
        raise ConfigurationError(
            message=f"Unknown chunk split strategy: {app_settings.chunk_split_strategy}"
        ) from exc
    return TextChunker(
        ChunkerConfig(
            max_chunk_chars=app_settings.chunk_max_chars,
            min_chunk_chars=app_settings.chunk_min_chars,
            overlap_chars=app_settings.chunk_overlap_chars,
            split_strategy=strategy,
        )
    )


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_services(
    app_settings: Settings | None = None,
    llm_providers: list[ILLMProvider] | None = None,
    storage: IStorageProvider | None = None,
) -> dict[str, Any]:
    """Construct and return all services with injected dependencies.

    Parameters
    ----------
    app_settings:
        Application settings.  A fresh :class:`Settings` is read from the
        environment when not provided.
    llm_providers:
        Providers to route across; built from settings when omitted.
    storage:
        Storage provider; selected by ``storage_backend`` when omitted.

    Returns
    -------
    dict
        A dictionary of service instances keyed by role name.
    """
    s = app_settings or Settings()

    providers = llm_providers if llm_providers is not None else build_llm_providers(s)
    router = build_provider_router(s, providers)
    storage = storage or build_storage(s)
    blob_store = LocalBlobProvider(base_dir=s.blob_dir)
    progress_tracker = ProgressTracker()

    # One semaphore for the whole process bounds provider calls across documents.
    chunk_semaphore = asyncio.Semaphore(s.chunk_concurrency)
    orchestrator = ExtractionOrchestrator(
        router=router,
        semaphore=chunk_semaphore,
        min_success_ratio=s.min_success_ratio,
    )
    text_extractor = TextExtractor()
    pipeline = DocumentPipeline(
        storage=storage,
        blob_store=blob_store,
        chunker=build_chunker(s),
        orchestrator=orchestrator,
        progress_tracker=progress_tracker,
        text_extractor=text_extractor,
    )
    job_queue = JobQueue(
        storage=storage,
        pipeline=pipeline,
        progress_tracker=progress_tracker,
        concurrency=s.job_concurrency,
        max_attempts=s.job_max_attempts,
        backoff_base_seconds=s.job_backoff_base_seconds,
        backoff_max_seconds=s.job_backoff_max_seconds,
        stuck_timeout_seconds=s.job_stuck_timeout_seconds,
        stuck_check_interval_seconds=s.job_stuck_check_interval_seconds,
        max_retained_jobs=s.job_max_retained,
    )
    ingestion_service = IngestionService(
        storage=storage,
        blob_store=blob_store,
        job_queue=job_queue,
        text_extractor=text_extractor,
    )
    systems_map_service = SystemsMapService(
        storage=storage,
        builder=SystemsMapBuilder(materiality_threshold=s.graph_materiality_threshold),
    )

    get_logger(__name__).info(
        "services_built",
        storage=type(storage).__name__,
        providers=router.provider_names,
        job_concurrency=s.job_concurrency,
        chunk_concurrency=s.chunk_concurrency,
    )

    return {
        "settings": s,
        "provider_router": router,
        "storage": storage,
        "blob_store": blob_store,
        "progress_tracker": progress_tracker,
        "orchestrator": orchestrator,
        "pipeline": pipeline,
        "job_queue": job_queue,
        "ingestion_service": ingestion_service,
        "systems_map_service": systems_map_service,
    }


async def start_services(services: dict[str, Any]) -> None:
    """Initialise storage and start the job queue's workers."""
    await services["storage"].initialize()
    await services["job_queue"].start()


async def stop_services(services: dict[str, Any]) -> None:
    await services["job_queue"].stop()
