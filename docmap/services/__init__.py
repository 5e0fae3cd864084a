"""Domain services for docmap.

- **chunker** -- Splits document text into bounded, exact-slice chunks.
- **response_parser** / **extraction_prompts** -- Prompt construction and
  normalization of model answers into extraction results.
- **provider_router** -- Ordered fallback across LLM providers per chunk.
- **aggregate_merger** -- Order-independent merge of chunk results.
- **extraction_orchestrator** -- Chunk fan-out under a shared semaphore.
- **entity_deriver** -- System entities from a document aggregate.
- **systems_map_builder** -- Document / entity relationship graphs.
- **text_extractor** -- PDF and text decoding.
- **ingestion_service** -- Document submission boundary.
"""
