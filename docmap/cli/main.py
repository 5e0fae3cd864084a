"""docmap command-line entry point.

Usage::

    docmap process report.pdf notes.md
    docmap process interview.txt --json --priority high
    docmap graph 3f2a... 9b1c... --granularity entity --min-confidence 0.5
    docmap providers --check

``process`` and ``graph`` share storage through the configured backend
(SQLite by default), so documents processed in one invocation can be
mapped in a later one.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from docmap.config.loader import load_settings
from docmap.config.settings import Settings
from docmap.models.document import Document
from docmap.models.extraction import DocumentAggregate
from docmap.models.job import Job, JobOptions, JobPriority, JobStatus, ProcessingStage
from docmap.models.systems_map import GraphFilters, MapGranularity, SystemEntityType, SystemsMap
from docmap.utils.errors import DocMapError, DocumentValidationError
from docmap.utils.logging import configure_logging

_DEFAULT_CONFIG = "config/config.yaml"


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_aggregate_text(document: Document, job: Job, aggregate: DocumentAggregate | None) -> str:
    """Format one processed document as a human-readable report."""
    lines: list[str] = []
    sep = "=" * 60

    lines.append(sep)
    lines.append(f"  {document.display_name}  ({document.document_id})")
    lines.append(sep)
    lines.append(
        f"Status: {job.status.value}  |  Attempts: {job.attempts}/{job.max_attempts}"
        f"  |  Words: {document.word_count}  |  Pages: {document.page_count}"
    )
    if job.error:
        lines.append(f"Error: {job.error}")

    if aggregate is None:
        lines.append("")
        return "\n".join(lines)

    lines.append(
        f"Chunks: {aggregate.chunks_succeeded}/{aggregate.chunks_total} succeeded"
        f"  |  Providers: {', '.join(aggregate.providers_used) or 'none'}"
    )
    lines.append("")

    if aggregate.themes:
        lines.append("THEMES")
        lines.append("-" * 40)
        for theme in aggregate.themes:
            lines.append(f"  {theme.name}  ({theme.confidence:.0%})")
            if theme.description:
                lines.append(f"    {theme.description[:200]}")
        lines.append("")

    if aggregate.quotes:
        lines.append("QUOTES")
        lines.append("-" * 40)
        for quote in aggregate.quotes:
            speaker = f" ({quote.speaker})" if quote.speaker else ""
            lines.append(f'  "{quote.text[:200]}"{speaker}')
        lines.append("")

    if aggregate.insights:
        lines.append("INSIGHTS")
        lines.append("-" * 40)
        for insight in aggregate.insights:
            lines.append(f"  [{insight.category}] {insight.text[:200]}")
        lines.append("")

    if aggregate.keywords:
        lines.append("KEYWORDS")
        lines.append("-" * 40)
        keywords = sorted(aggregate.keywords, key=lambda k: (-k.frequency, k.key))
        lines.append(
            "  " + ", ".join(f"{k.term} [{k.category}] x{k.frequency}" for k in keywords[:30])
        )
        lines.append("")

    if aggregate.chunk_failures:
        lines.append(f"Failed chunks: {', '.join(str(f.chunk_index) for f in aggregate.chunk_failures)}")
        lines.append("")

    return "\n".join(lines)


def _format_process_json(results: list[tuple[Document, Job, DocumentAggregate | None]]) -> str:
    output: list[dict[str, Any]] = []
    for document, job, aggregate in results:
        output.append(
            {
                "document": document.model_dump(mode="json", exclude={"full_text"}),
                "job": job.model_dump(mode="json"),
                "aggregate": aggregate.model_dump(mode="json") if aggregate else None,
            }
        )
    return json.dumps(output, indent=2, default=str)


def _format_graph_text(graph: SystemsMap) -> str:
    lines = [
        f"Systems map ({graph.granularity.value})",
        f"  Nodes: {len(graph.nodes)}  |  Edges: {len(graph.edges)}",
        "",
    ]
    labels = {node.id: node.label for node in graph.nodes}
    for node in graph.nodes:
        lines.append(
            f"  [{node.type}] {node.label}  entities={node.entity_count}"
            f"  confidence={node.confidence:.2f}"
        )
    if graph.edges:
        lines.append("")
        for edge in sorted(graph.edges, key=lambda e: (-e.strength, e.id)):
            lines.append(
                f"  {labels.get(edge.source, edge.source)} <-> "
                f"{labels.get(edge.target, edge.target)}  strength={edge.strength:.2f}"
                f"  shared={len(edge.shared)}"
            )
    return "\n".join(lines)


def _print_progress(job_id: str, stage: ProcessingStage, progress: float, message: str) -> None:
    print(f"[{job_id[:8]}] {progress:5.1f}% {stage.value}: {message}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _process(args: argparse.Namespace, settings: Settings) -> int:
    """Submit each file, wait for its job and print the results.

    Returns 0 when every document completed, 1 otherwise.
    """
    from docmap.main import build_services, start_services, stop_services

    paths = [Path(p).resolve() for p in args.files]
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for path in missing:
            print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    services = build_services(settings)
    await start_services(services)
    exit_code = 0
    results: list[tuple[Document, Job, DocumentAggregate | None]] = []
    try:
        options = JobOptions(priority=JobPriority(args.priority))
        submitted: list[tuple[Document, str]] = []
        for path in paths:
            data = await asyncio.to_thread(path.read_bytes)
            try:
                document, job_id = await services["ingestion_service"].submit(
                    path.name,
                    data,
                    source=args.source or str(path),
                    category=args.category,
                    tags=args.tags,
                    options=options,
                )
            except DocumentValidationError as exc:
                print(f"Error: {exc}", file=sys.stderr)
                exit_code = 1
                continue
            if not args.quiet:
                services["progress_tracker"].register_listener(job_id, _print_progress)
            submitted.append((document, job_id))

        job_queue = services["job_queue"]
        storage = services["storage"]
        for document, job_id in submitted:
            try:
                job = await job_queue.wait_for(job_id, timeout=args.timeout)
            except asyncio.TimeoutError:
                await job_queue.cancel_job(job_id)
                print(f"Error: Timed out waiting for {document.filename}", file=sys.stderr)
                exit_code = 1
                continue
            aggregate = None
            if job.status is JobStatus.COMPLETED:
                aggregate = await storage.get_aggregate(document.document_id)
            else:
                exit_code = 1
            stored = await storage.get_document(document.document_id) or document
            results.append((stored, job, aggregate))
    finally:
        await stop_services(services)

    if args.json_output:
        print(_format_process_json(results))
    else:
        for document, job, aggregate in results:
            print(_format_aggregate_text(document, job, aggregate))
    return exit_code


async def _graph(args: argparse.Namespace, settings: Settings) -> int:
    from docmap.main import build_services

    # Mapping reads stored entities only; no provider is ever called.
    services = build_services(settings, llm_providers=[])
    await services["storage"].initialize()

    filters = GraphFilters(
        min_confidence=(
            settings.graph_min_confidence if args.min_confidence is None else args.min_confidence
        ),
        granularity=MapGranularity(args.granularity),
        materiality_threshold=args.threshold,
        entity_types=[SystemEntityType(t.upper()) for t in args.types] if args.types else None,
    )
    graph = await services["systems_map_service"].build_graph(args.document_ids, filters)

    if args.json_output:
        print(json.dumps(graph.model_dump(mode="json"), indent=2))
    else:
        print(_format_graph_text(graph))
    return 0


async def _providers(args: argparse.Namespace, settings: Settings) -> int:
    from docmap.main import build_llm_providers, build_provider_router

    providers = build_llm_providers(settings)
    router = build_provider_router(settings, providers)
    order = router.provider_names

    for provider in providers:
        name = provider.get_provider_name()
        position = f"#{order.index(name) + 1}" if name in order else "--"
        line = f"  {position:>3}  {name:<18} available={'yes' if provider.is_available() else 'no'}"
        if args.check and provider.is_available():
            valid = await provider.validate_credentials()
            line += f"  credentials={'ok' if valid else 'rejected'}"
        print(line)

    if not order:
        print("No LLM provider is configured; set ANTHROPIC_API_KEY, OPENAI_API_KEY or MOONSHOT_API_KEY.")
        return 1
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docmap",
        description="Extract themes, quotes, insights and keywords from documents and map how they relate.",
    )
    parser.add_argument(
        "--config",
        default=_DEFAULT_CONFIG,
        help=f"YAML config file (default: {_DEFAULT_CONFIG}).",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process documents and print their aggregates.")
    process.add_argument("files", nargs="+", help="PDF, text or markdown files.")
    process.add_argument("--json", action="store_true", dest="json_output", help="Output JSON.")
    process.add_argument(
        "--priority",
        choices=[p.value for p in JobPriority],
        default=JobPriority.MEDIUM.value,
        help="Job priority (default: medium).",
    )
    process.add_argument("--source", default=None, help="Source recorded on each document.")
    process.add_argument("--category", default=None, help="Category recorded on each document.")
    process.add_argument("--tag", action="append", dest="tags", default=[], help="Tag (repeatable).")
    process.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for each job before cancelling it.",
    )

    graph = subparsers.add_parser("graph", help="Print the systems map for processed documents.")
    graph.add_argument("document_ids", nargs="+", help="Ids of processed documents.")
    graph.add_argument(
        "--granularity",
        choices=[g.value for g in MapGranularity],
        default=MapGranularity.DOCUMENT.value,
    )
    graph.add_argument("--min-confidence", type=float, default=None)
    graph.add_argument("--threshold", type=float, default=None, help="Edge materiality threshold.")
    graph.add_argument(
        "--type",
        action="append",
        dest="types",
        choices=[t.value.lower() for t in SystemEntityType],
        help="Only include entities of this type (repeatable).",
    )
    graph.add_argument("--json", action="store_true", dest="json_output", help="Output JSON.")

    providers = subparsers.add_parser("providers", help="Show LLM provider order and availability.")
    providers.add_argument(
        "--check",
        action="store_true",
        help="Also verify credentials with each available provider.",
    )
    return parser


_COMMANDS = {
    "process": _process,
    "graph": _graph,
    "providers": _providers,
}


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, configure logging and run the selected command."""
    args = _build_parser().parse_args(argv)

    log_level = "WARNING" if args.quiet else os.environ.get("LOG_LEVEL", "INFO")
    configure_logging(log_level=log_level, stream=sys.stderr)

    try:
        settings = load_settings(args.config)
        return asyncio.run(_COMMANDS[args.command](args, settings))
    except DocMapError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
