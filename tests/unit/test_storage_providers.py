"""Unit tests for the in-memory and SQLite storage providers.

Both backends run the same contract tests through a parametrized fixture.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import Chunk, Document, DocumentStatus
from docmap.models.extraction import AggregatedTheme, DocumentAggregate
from docmap.models.systems_map import SystemEntity, SystemEntityType
from docmap.providers.storage.memory_storage import InMemoryStorageProvider
from docmap.providers.storage.sqlite_storage import SQLiteStorageProvider
from docmap.utils.errors import StorageError


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def storage(request, tmp_path: Path) -> IStorageProvider:
    if request.param == "memory":
        provider: IStorageProvider = InMemoryStorageProvider()
    else:
        provider = SQLiteStorageProvider(db_path=tmp_path / "nested" / "docmap.db")
    await provider.initialize()
    return provider


def _document(document_id: str = "doc-1", **kwargs) -> Document:
    return Document(
        document_id=document_id,
        filename=f"{document_id}.txt",
        size_bytes=10,
        **kwargs,
    )


def _aggregate(document_id: str, theme: str = "Housing") -> DocumentAggregate:
    return DocumentAggregate(
        document_id=document_id,
        themes=[AggregatedTheme(key=theme.lower(), name=theme, confidence=0.8, source_chunks=[0])],
        chunks_total=1,
        chunks_succeeded=1,
    )


def _entity(document_id: str, name: str, confidence: float = 0.7) -> SystemEntity:
    return SystemEntity(
        type=SystemEntityType.SERVICE,
        name=name,
        document_id=document_id,
        confidence=confidence,
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestDocuments:
    @pytest.mark.asyncio
    async def test_create_and_get(self, storage: IStorageProvider) -> None:
        created = await storage.create_document(_document(tags=["youth"], title="Report"))
        fetched = await storage.get_document("doc-1")

        assert fetched == created
        assert fetched.status is DocumentStatus.PENDING
        assert fetched.tags == ["youth"]

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, storage: IStorageProvider) -> None:
        assert await storage.get_document("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        with pytest.raises(StorageError):
            await storage.create_document(_document())

    @pytest.mark.asyncio
    async def test_status_transitions(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())

        failed = await storage.update_document_status(
            "doc-1", DocumentStatus.FAILED, error_message="boom"
        )
        assert failed.error_message == "boom"

        completed = await storage.update_document_status("doc-1", DocumentStatus.COMPLETED)
        assert completed.status is DocumentStatus.COMPLETED
        assert completed.error_message is None
        assert completed.processed_at is not None
        assert (await storage.get_document("doc-1")).status is DocumentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_update_missing_document_raises(self, storage: IStorageProvider) -> None:
        with pytest.raises(StorageError):
            await storage.update_document_status("missing", DocumentStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_update_text(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        await storage.update_document_text("doc-1", full_text="a b c", word_count=3, page_count=1)

        document = await storage.get_document("doc-1")
        assert (document.full_text, document.word_count, document.page_count) == ("a b c", 3, 1)

    @pytest.mark.asyncio
    async def test_list_by_status(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document("a"))
        await storage.create_document(_document("b"))
        await storage.update_document_status("b", DocumentStatus.COMPLETED)

        assert {d.document_id for d in await storage.list_documents()} == {"a", "b"}
        completed = await storage.list_documents(DocumentStatus.COMPLETED)
        assert [d.document_id for d in completed] == ["b"]


# ---------------------------------------------------------------------------
# Chunks, aggregates and entities
# ---------------------------------------------------------------------------


class TestResults:
    @pytest.mark.asyncio
    async def test_chunks_replace_semantics(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        first = [
            Chunk(document_id="doc-1", index=1, text="world", start_char=6, end_char=11),
            Chunk(document_id="doc-1", index=0, text="hello", start_char=0, end_char=5),
        ]
        await storage.save_chunks("doc-1", first)
        assert [c.index for c in await storage.get_chunks("doc-1")] == [0, 1]

        await storage.save_chunks("doc-1", first[1:])
        chunks = await storage.get_chunks("doc-1")
        assert [c.text for c in chunks] == ["hello"]

    @pytest.mark.asyncio
    async def test_aggregate_and_entities_replace(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        await storage.save_aggregates(_aggregate("doc-1"), [_entity("doc-1", "Youth Hub")])
        await storage.save_aggregates(
            _aggregate("doc-1", theme="Transport"),
            [_entity("doc-1", "Bus Service"), _entity("doc-1", "Library", 0.6)],
        )

        aggregate = await storage.get_aggregate("doc-1")
        assert [t.name for t in aggregate.themes] == ["Transport"]
        entities = await storage.get_entities(["doc-1"])
        assert sorted(e.name for e in entities) == ["Bus Service", "Library"]
        assert all(e.type is SystemEntityType.SERVICE for e in entities)

    @pytest.mark.asyncio
    async def test_entities_for_several_documents(self, storage: IStorageProvider) -> None:
        for doc_id in ("a", "b", "c"):
            await storage.create_document(_document(doc_id))
            await storage.save_aggregates(_aggregate(doc_id), [_entity(doc_id, f"Service {doc_id}")])

        entities = await storage.get_entities(["a", "c", "a"])
        assert sorted(e.document_id for e in entities) == ["a", "c"]
        assert await storage.get_entities([]) == []

    @pytest.mark.asyncio
    async def test_missing_aggregate(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        assert await storage.get_aggregate("doc-1") is None
        assert await storage.get_chunks("doc-1") == []

    @pytest.mark.asyncio
    async def test_save_results_writes_whole_run(self, storage: IStorageProvider) -> None:
        await storage.create_document(_document())
        await storage.update_document_status("doc-1", DocumentStatus.FAILED, "first try failed")
        chunks = [Chunk(document_id="doc-1", index=0, text="hello", start_char=0, end_char=5)]

        document = await storage.save_results(
            "doc-1",
            chunks=chunks,
            aggregate=_aggregate("doc-1"),
            entities=[_entity("doc-1", "Youth Hub")],
            full_text="hello",
            word_count=1,
            page_count=1,
        )

        assert document.status is DocumentStatus.COMPLETED
        assert document.error_message is None
        assert document.processed_at is not None
        assert await storage.get_document("doc-1") == document
        assert (document.full_text, document.word_count) == ("hello", 1)
        assert await storage.get_chunks("doc-1") == chunks
        assert [t.name for t in (await storage.get_aggregate("doc-1")).themes] == ["Housing"]
        assert [e.name for e in await storage.get_entities(["doc-1"])] == ["Youth Hub"]

    @pytest.mark.asyncio
    async def test_save_for_unknown_document_raises(self, storage: IStorageProvider) -> None:
        with pytest.raises(StorageError):
            await storage.save_aggregates(_aggregate("ghost"), [])


class TestSQLitePersistence:
    @pytest.mark.asyncio
    async def test_survives_new_provider_instance(self, tmp_path: Path) -> None:
        db_path = tmp_path / "docmap.db"
        first = SQLiteStorageProvider(db_path=db_path)
        await first.initialize()
        await first.create_document(_document())
        await first.save_aggregates(_aggregate("doc-1"), [_entity("doc-1", "Youth Hub")])

        second = SQLiteStorageProvider(db_path=db_path)
        await second.initialize()
        assert (await second.get_document("doc-1")).filename == "doc-1.txt"
        assert [e.name for e in await second.get_entities(["doc-1"])] == ["Youth Hub"]

    @pytest.mark.asyncio
    async def test_failed_save_results_leaves_previous_run(self, tmp_path: Path) -> None:
        storage = SQLiteStorageProvider(db_path=tmp_path / "docmap.db")
        await storage.initialize()
        await storage.create_document(_document())
        old_chunks = [Chunk(document_id="doc-1", index=0, text="old", start_char=0, end_char=3)]
        await storage.save_results(
            "doc-1",
            chunks=old_chunks,
            aggregate=_aggregate("doc-1"),
            entities=[_entity("doc-1", "Youth Hub")],
            full_text="old",
            word_count=1,
            page_count=1,
        )
        await storage.update_document_status("doc-1", DocumentStatus.PROCESSING)
        # Duplicate chunk indices violate the primary key part-way through the write.
        duplicate = Chunk(document_id="doc-1", index=0, text="new", start_char=0, end_char=3)

        with pytest.raises(StorageError):
            await storage.save_results(
                "doc-1",
                chunks=[duplicate, duplicate],
                aggregate=_aggregate("doc-1", theme="Transport"),
                entities=[_entity("doc-1", "Bus Service")],
                full_text="new",
                word_count=1,
                page_count=1,
            )

        assert await storage.get_chunks("doc-1") == old_chunks
        assert [t.name for t in (await storage.get_aggregate("doc-1")).themes] == ["Housing"]
        assert [e.name for e in await storage.get_entities(["doc-1"])] == ["Youth Hub"]
        document = await storage.get_document("doc-1")
        assert document.status is DocumentStatus.PROCESSING
        assert document.full_text == "old"
