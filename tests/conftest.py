"""Shared pytest fixtures for the docmap test suite."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from docmap.config.settings import Settings
from docmap.interfaces.llm_provider import ILLMProvider
from docmap.models.document import Document
from docmap.providers.blob.local_blob import LocalBlobProvider
from docmap.providers.storage.memory_storage import InMemoryStorageProvider
from docmap.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extraction_json(
    themes: list[dict[str, Any]] | None = None,
    quotes: list[dict[str, Any]] | None = None,
    insights: list[dict[str, Any]] | None = None,
    keywords: list[dict[str, Any]] | None = None,
) -> str:
    """Build a model answer in the shape the extraction prompt asks for."""
    return json.dumps(
        {
            "themes": themes or [],
            "quotes": quotes or [],
            "insights": insights or [],
            "keywords": keywords or [],
        }
    )


DEFAULT_EXTRACTION = extraction_json(
    themes=[
        {
            "name": "Youth Mentoring",
            "description": "Mentors support young people",
            "confidence": 0.9,
        }
    ],
    quotes=[{"text": "The hub changed my life.", "speaker": "Participant", "confidence": 0.8}],
    insights=[{"text": "Transport is a barrier to access", "category": "barrier", "confidence": 0.7}],
    keywords=[
        {"term": "Youth Hub", "category": "service", "frequency": 2},
        {"term": "Transport", "category": "factor", "frequency": 1},
    ],
)


def make_llm_provider(
    name: str = "mock-llm",
    response: Any = DEFAULT_EXTRACTION,
    available: bool = True,
) -> MagicMock:
    """Mock ILLMProvider whose ``complete`` returns (or raises) *response*.

    Pass a list to script consecutive calls (``side_effect`` semantics) or an
    exception instance to make every call fail.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = name
    mock.is_available.return_value = available
    mock.validate_credentials = AsyncMock(return_value=available)
    if isinstance(response, (list, BaseException)):
        mock.complete = AsyncMock(side_effect=response)
    else:
        mock.complete = AsyncMock(return_value=response)
    return mock


def paragraph(length: int, word: str = "service") -> str:
    """A paragraph of exactly *length* characters ending with a period."""
    body = " ".join([word] * (length // (len(word) + 1) + 1))[: length - 1].rstrip()
    return body.ljust(length - 1, "s") + "."


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging() -> None:
    """Send log lines to the real stderr so captured stdout holds only CLI output."""
    configure_logging(log_level="WARNING", stream=sys.__stderr__)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-anthropic",
        openai_api_key="sk-test",
        moonshot_api_key="",
        storage_backend="memory",
        sqlite_db_path=str(tmp_path / "docmap.db"),
        blob_dir=str(tmp_path / "blobs"),
        llm_requests_per_minute=0,
        job_backoff_base_seconds=0.0,
        job_backoff_max_seconds=0.0,
    )


@pytest.fixture
def mock_llm_provider() -> MagicMock:
    """Available mock provider returning a valid extraction for every chunk."""
    return make_llm_provider()


@pytest.fixture
def memory_storage() -> InMemoryStorageProvider:
    return InMemoryStorageProvider()


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobProvider:
    return LocalBlobProvider(base_dir=tmp_path / "blobs")


@pytest.fixture
def sample_text() -> str:
    """Three short paragraphs about a community service network."""
    return (
        "The Youth Hub offers mentoring and after-school programs for young "
        "people in the northern suburbs. Staff report strong attendance.\n\n"
        "Transport remains the biggest barrier. Dr. Lee noted that buses stop "
        "running at 6 p.m., which cuts evening sessions short.\n\n"
        "Participants described the hub as a safe place. Several said it "
        "changed how they see their future."
    )


@pytest.fixture
def sample_document() -> Document:
    return Document(
        document_id="doc-1",
        filename="report.txt",
        content_type="text/plain",
        size_bytes=120,
        title="Community Report",
        source="interviews",
    )
