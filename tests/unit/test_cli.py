"""Unit tests for the docmap CLI (docmap.cli.main)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from docmap.cli.main import (
    _build_parser,
    _format_aggregate_text,
    _format_graph_text,
    _graph,
    _process,
    _providers,
    main,
)
from docmap.config.settings import Settings
from docmap.models.document import Document
from docmap.models.extraction import (
    AggregatedKeyword,
    AggregatedQuote,
    AggregatedTheme,
    ChunkFailure,
    DocumentAggregate,
)
from docmap.models.job import Job, JobStatus
from docmap.models.systems_map import MapEdge, MapGranularity, MapNode, SystemsMap
from tests.conftest import make_llm_provider

# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_process_defaults(self) -> None:
        args = _build_parser().parse_args(["process", "a.txt", "b.pdf"])
        assert args.command == "process"
        assert args.files == ["a.txt", "b.pdf"]
        assert args.priority == "medium"
        assert args.json_output is False
        assert args.tags == []
        assert args.config == "config/config.yaml"

    def test_process_options(self) -> None:
        args = _build_parser().parse_args(
            ["-q", "process", "a.txt", "--json", "--priority", "high", "--tag", "x", "--tag", "y"]
        )
        assert args.quiet is True
        assert args.json_output is True
        assert args.priority == "high"
        assert args.tags == ["x", "y"]

    def test_graph_options(self) -> None:
        args = _build_parser().parse_args(
            ["graph", "d1", "d2", "--granularity", "entity", "--type", "service", "--threshold", "0.5"]
        )
        assert args.document_ids == ["d1", "d2"]
        assert args.granularity == "entity"
        assert args.types == ["service"]
        assert args.threshold == 0.5
        assert args.min_confidence is None

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["graph", "d1", "--type", "person"])

    def test_no_subcommand(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])


# ======================================================================
# Formatting
# ======================================================================


class TestFormatting:
    def test_aggregate_text(self) -> None:
        document = Document(document_id="d1", filename="report.txt", title="Report", word_count=120)
        job = Job(job_id="j1", document_id="d1", status=JobStatus.COMPLETED, attempts=1)
        aggregate = DocumentAggregate(
            document_id="d1",
            themes=[AggregatedTheme(key="housing", name="Housing", confidence=0.75)],
            quotes=[AggregatedQuote(key="q", text="We need homes.", speaker="Resident", confidence=0.6)],
            keywords=[AggregatedKeyword(key="rent", term="Rent", category="factor", frequency=3)],
            chunks_total=2,
            chunks_succeeded=1,
            chunk_failures=[ChunkFailure(chunk_index=1)],
            providers_used=["anthropic"],
        )

        text = _format_aggregate_text(document, job, aggregate)

        assert "Report" in text
        assert "Chunks: 1/2 succeeded" in text
        assert "Housing  (75%)" in text
        assert '"We need homes." (Resident)' in text
        assert "Rent [factor] x3" in text
        assert "Failed chunks: 1" in text

    def test_failed_job_without_aggregate(self) -> None:
        document = Document(document_id="d1", filename="report.txt")
        job = Job(job_id="j1", document_id="d1", status=JobStatus.FAILED, error="boom")
        text = _format_aggregate_text(document, job, None)
        assert "Status: FAILED" in text
        assert "Error: boom" in text
        assert "THEMES" not in text

    def test_graph_text(self) -> None:
        graph = SystemsMap(
            granularity=MapGranularity.DOCUMENT,
            nodes=[
                MapNode(id="a", label="Doc A", type="document", entity_count=3, confidence=0.8),
                MapNode(id="b", label="Doc B", type="document", entity_count=2, confidence=0.6),
            ],
            edges=[MapEdge(id="a--b", source="a", target="b", strength=0.35, shared=["x"])],
        )
        text = _format_graph_text(graph)
        assert "Nodes: 2  |  Edges: 1" in text
        assert "Doc A <-> Doc B  strength=0.35" in text


# ======================================================================
# Commands
# ======================================================================


def _sqlite_settings(settings: Settings) -> Settings:
    return settings.model_copy(update={"storage_backend": "sqlite", "chunk_min_chars": 10})


class TestCommands:
    @pytest.mark.asyncio
    async def test_process_missing_file(self, settings: Settings, tmp_path: Path) -> None:
        args = _build_parser().parse_args(["process", str(tmp_path / "nope.txt")])
        assert await _process(args, settings) == 1

    @pytest.mark.asyncio
    async def test_process_unsupported_file(self, settings: Settings, tmp_path: Path) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG\r\n")
        args = _build_parser().parse_args(["-q", "process", str(path)])
        with patch("docmap.main.build_llm_providers", return_value=[make_llm_provider("anthropic")]):
            assert await _process(args, settings) == 1

    @pytest.mark.asyncio
    async def test_process_then_graph(
        self, settings: Settings, tmp_path: Path, sample_text: str, capsys
    ) -> None:
        settings = _sqlite_settings(settings)
        first = tmp_path / "first.txt"
        second = tmp_path / "second.md"
        first.write_text(sample_text, encoding="utf-8")
        second.write_text(sample_text, encoding="utf-8")

        args = _build_parser().parse_args(
            ["-q", "process", str(first), str(second), "--json", "--category", "interviews"]
        )
        with patch("docmap.main.build_llm_providers", return_value=[make_llm_provider("anthropic")]):
            assert await _process(args, settings) == 0

        results = json.loads(capsys.readouterr().out)
        assert len(results) == 2
        assert all(r["job"]["status"] == "COMPLETED" for r in results)
        assert results[0]["document"]["category"] == "interviews"
        assert results[1]["document"]["content_type"] == "text/markdown"
        assert results[0]["aggregate"]["themes"][0]["name"] == "Youth Mentoring"

        doc_ids = [r["document"]["document_id"] for r in results]
        graph_args = _build_parser().parse_args(["graph", *doc_ids, "--json"])
        assert await _graph(graph_args, settings) == 0

        graph = json.loads(capsys.readouterr().out)
        assert len(graph["nodes"]) == 2
        # Identical entity sets at the same confidence.
        assert len(graph["edges"]) == 1

    @pytest.mark.asyncio
    async def test_process_reports_failed_job(
        self, settings: Settings, tmp_path: Path, sample_text: str, capsys
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text(sample_text, encoding="utf-8")
        settings = settings.model_copy(update={"job_max_attempts": 1})
        failing = make_llm_provider("anthropic", response="no json here")

        args = _build_parser().parse_args(["-q", "process", str(path)])
        with patch("docmap.main.build_llm_providers", return_value=[failing]):
            assert await _process(args, settings) == 1
        assert "Status: FAILED" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_providers_lists_order(self, settings: Settings, capsys) -> None:
        args = _build_parser().parse_args(["providers"])
        assert await _providers(args, settings) == 0

        out = capsys.readouterr().out
        assert "#1  anthropic" in out
        assert "#2  openai" in out
        assert "moonshot" in out and "available=no" in out

    @pytest.mark.asyncio
    async def test_providers_none_configured(self, settings: Settings, capsys) -> None:
        bare = settings.model_copy(update={"anthropic_api_key": "", "openai_api_key": ""})
        args = _build_parser().parse_args(["providers"])
        assert await _providers(args, bare) == 1
        assert "No LLM provider is configured" in capsys.readouterr().out


class TestMain:
    def test_invalid_config_returns_error(self, tmp_path: Path, capsys) -> None:
        config = tmp_path / "broken.yaml"
        config.write_text("jobs: [unclosed", encoding="utf-8")

        with patch("docmap.cli.main.configure_logging"):
            assert main(["--config", str(config), "providers"]) == 1
        assert "Invalid YAML" in capsys.readouterr().err
