"""SQLite-backed storage provider.

Persists documents, chunks, aggregates and system entities to a local
SQLite database (``data/docmap.db`` by default) using ``aiosqlite`` for
async I/O.  Models are stored as their pydantic JSON next to the handful
of columns that queries filter or order on.

Replace semantics: ``save_chunks`` and ``save_aggregates`` delete the
document's previous rows inside the same transaction as the insert, so a
retried job overwrites rather than duplicates.  ``save_results`` writes
a whole processing run (chunks, aggregate, entities and the document row)
in one transaction.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import Chunk, Document, DocumentStatus, utc_now
from docmap.models.extraction import DocumentAggregate
from docmap.models.systems_map import SystemEntity
from docmap.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docmap.db")

_CREATE_DOCUMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    document_id TEXT PRIMARY KEY,
    status      TEXT NOT NULL,
    uploaded_at TEXT NOT NULL,
    data        TEXT NOT NULL
);
"""

_CREATE_CHUNKS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    document_id TEXT    NOT NULL REFERENCES documents(document_id),
    chunk_index INTEGER NOT NULL,
    data        TEXT    NOT NULL,
    PRIMARY KEY (document_id, chunk_index)
);
"""

_CREATE_AGGREGATES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS aggregates (
    document_id TEXT PRIMARY KEY REFERENCES documents(document_id),
    data        TEXT NOT NULL
);
"""

_CREATE_ENTITIES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS system_entities (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL REFERENCES documents(document_id),
    entity_type TEXT NOT NULL,
    name        TEXT NOT NULL,
    confidence  REAL NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
    "CREATE INDEX IF NOT EXISTS idx_entities_document ON system_entities(document_id);",
]

_INSERT_DOCUMENT_SQL = """\
INSERT INTO documents (document_id, status, uploaded_at, data)
VALUES (?, ?, ?, ?);
"""

_UPDATE_DOCUMENT_SQL = """\
UPDATE documents SET status = ?, data = ? WHERE document_id = ?;
"""

_SELECT_DOCUMENT_SQL = "SELECT data FROM documents WHERE document_id = ?;"

_SELECT_DOCUMENTS_SQL = "SELECT data FROM documents ORDER BY uploaded_at, document_id;"

_SELECT_DOCUMENTS_BY_STATUS_SQL = """\
SELECT data FROM documents WHERE status = ? ORDER BY uploaded_at, document_id;
"""

_DELETE_CHUNKS_SQL = "DELETE FROM chunks WHERE document_id = ?;"

_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (document_id, chunk_index, data) VALUES (?, ?, ?);
"""

_SELECT_CHUNKS_SQL = """\
SELECT data FROM chunks WHERE document_id = ? ORDER BY chunk_index;
"""

_UPSERT_AGGREGATE_SQL = """\
INSERT INTO aggregates (document_id, data) VALUES (?, ?)
ON CONFLICT(document_id) DO UPDATE SET data = excluded.data;
"""

_SELECT_AGGREGATE_SQL = "SELECT data FROM aggregates WHERE document_id = ?;"

_DELETE_ENTITIES_SQL = "DELETE FROM system_entities WHERE document_id = ?;"

_INSERT_ENTITY_SQL = """\
INSERT INTO system_entities (document_id, entity_type, name, confidence)
VALUES (?, ?, ?, ?);
"""

_SELECT_ENTITIES_SQL = """\
SELECT document_id, entity_type, name, confidence
FROM system_entities
WHERE document_id IN ({placeholders})
ORDER BY document_id, id;
"""


class SQLiteStorageProvider(IStorageProvider):
    """SQLite-backed document and result persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_DOCUMENTS_TABLE_SQL)
            await db.execute(_CREATE_CHUNKS_TABLE_SQL)
            await db.execute(_CREATE_AGGREGATES_TABLE_SQL)
            await db.execute(_CREATE_ENTITIES_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("storage_db_initialized", path=str(self._db_path))

    # -- Documents -----------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_DOCUMENT_SQL,
                    (
                        document.document_id,
                        document.status.value,
                        document.uploaded_at.isoformat(),
                        document.model_dump_json(),
                    ),
                )
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise StorageError(
                message=f"Document {document.document_id} already exists",
                provider_name="sqlite",
            ) from exc
        logger.info("document_created", document_id=document.document_id)
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Document.model_validate_json(row[0])

    async def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            if status is None:
                cursor = await db.execute(_SELECT_DOCUMENTS_SQL)
            else:
                cursor = await db.execute(_SELECT_DOCUMENTS_BY_STATUS_SQL, (status.value,))
            rows = await cursor.fetchall()
        return [Document.model_validate_json(row[0]) for row in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: str | None = None,
    ) -> Document:
        document = await self._require(document_id)
        update: dict = {
            "status": status,
            "error_message": error_message if status is DocumentStatus.FAILED else None,
        }
        if status is DocumentStatus.COMPLETED:
            update["processed_at"] = utc_now()
        updated = document.model_copy(update=update)
        await self._write_document(updated)
        return updated

    async def update_document_text(
        self,
        document_id: str,
        full_text: str,
        word_count: int,
        page_count: int,
    ) -> Document:
        document = await self._require(document_id)
        updated = document.model_copy(
            update={"full_text": full_text, "word_count": word_count, "page_count": page_count}
        )
        await self._write_document(updated)
        return updated

    # -- Chunks --------------------------------------------------------------

    async def save_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        await self._require(document_id)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await _replace_chunks(db, document_id, chunks)
            await db.commit()
        logger.debug("chunks_saved", document_id=document_id, count=len(chunks))

    async def get_chunks(self, document_id: str) -> list[Chunk]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SELECT_CHUNKS_SQL, (document_id,))
            rows = await cursor.fetchall()
        return [Chunk.model_validate_json(row[0]) for row in rows]

    # -- Aggregates & entities -----------------------------------------------

    async def save_aggregates(
        self,
        aggregate: DocumentAggregate,
        entities: list[SystemEntity],
    ) -> None:
        document_id = aggregate.document_id
        await self._require(document_id)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await _replace_aggregate(db, aggregate, entities)
            await db.commit()
        logger.debug(
            "aggregates_saved",
            document_id=document_id,
            themes=len(aggregate.themes),
            entities=len(entities),
        )

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
        document = await self._require(document_id)
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
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await _replace_chunks(db, document_id, chunks)
                await _replace_aggregate(db, aggregate, entities)
                await db.execute(
                    _UPDATE_DOCUMENT_SQL,
                    (updated.status.value, updated.model_dump_json(), document_id),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Could not save results for {document_id}: {exc}",
                provider_name="sqlite",
            ) from exc
        logger.info(
            "results_saved",
            document_id=document_id,
            chunks=len(chunks),
            entities=len(entities),
        )
        return updated

    async def get_aggregate(self, document_id: str) -> DocumentAggregate | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SELECT_AGGREGATE_SQL, (document_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return DocumentAggregate.model_validate_json(row[0])

    async def get_entities(self, document_ids: list[str]) -> list[SystemEntity]:
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        query = _SELECT_ENTITIES_SQL.format(placeholders=placeholders)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, ids)
            rows = await cursor.fetchall()
        return [
            SystemEntity(
                type=row["entity_type"],
                name=row["name"],
                document_id=row["document_id"],
                confidence=row["confidence"],
            )
            for row in rows
        ]

    # -- Helpers -------------------------------------------------------------

    async def _require(self, document_id: str) -> Document:
        document = await self.get_document(document_id)
        if document is None:
            raise StorageError(
                message=f"Document {document_id} not found",
                provider_name="sqlite",
            )
        return document

    async def _write_document(self, document: Document) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPDATE_DOCUMENT_SQL,
                (document.status.value, document.model_dump_json(), document.document_id),
            )
            await db.commit()


# -- Transaction-scoped writes --------------------------------------------------


async def _replace_chunks(db: aiosqlite.Connection, document_id: str, chunks: list[Chunk]) -> None:
    await db.execute(_DELETE_CHUNKS_SQL, (document_id,))
    await db.executemany(
        _INSERT_CHUNK_SQL,
        [(document_id, c.index, c.model_dump_json()) for c in chunks],
    )


async def _replace_aggregate(
    db: aiosqlite.Connection,
    aggregate: DocumentAggregate,
    entities: list[SystemEntity],
) -> None:
    document_id = aggregate.document_id
    await db.execute(_UPSERT_AGGREGATE_SQL, (document_id, aggregate.model_dump_json()))
    await db.execute(_DELETE_ENTITIES_SQL, (document_id,))
    await db.executemany(
        _INSERT_ENTITY_SQL,
        [(document_id, e.type.value, e.name, e.confidence) for e in entities],
    )
