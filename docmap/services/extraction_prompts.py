"""Prompt templates for chunk-level knowledge extraction.

Every provider receives the same system prompt and a user prompt built
from the chunk text plus optional document context (title, source).  The
JSON shape requested here is what
:func:`docmap.services.response_parser.parse_extraction_response`
normalizes.
"""

from __future__ import annotations

EXTRACTION_SYSTEM_PROMPT = (
    "You are a document analyst specializing in community research and "
    "service systems. Extract key themes, significant quotes, actionable "
    "insights and keywords from the text. Focus on clarity and relevance. "
    "Respond with a single JSON object only, no commentary."
)

# Keyword categories the entity deriver understands; anything else is
# still accepted and kept as-is.
KEYWORD_CATEGORIES = (
    "service",
    "outcome",
    "factor",
    "theme",
    "organization",
    "program",
    "place",
    "person",
    "topic",
    "other",
)

_USER_PROMPT_TEMPLATE = """\
Analyze this document chunk.
{context_block}
Text:
{chunk_text}

Return JSON in exactly this shape:
{{
  "themes": [
    {{"name": "theme name", "description": "supporting evidence", "confidence": 0.0}}
  ],
  "quotes": [
    {{"text": "significant quote", "speaker": "who said it or null", "confidence": 0.0}}
  ],
  "insights": [
    {{"text": "actionable insight", "category": "opportunity|challenge|recommendation", "confidence": 0.0}}
  ],
  "keywords": [
    {{"term": "keyword", "category": "{categories}", "frequency": 1}}
  ]
}}

Confidence values are between 0.0 and 1.0. Use keyword category "service" for
programs, organisations and support systems, "outcome" for goals and results,
and "factor" for conditions, barriers and enablers.
Focus on 3-5 key themes, 2-4 important quotes, and 3-5 actionable insights."""


def build_user_prompt(chunk_text: str, document_context: str | None = None) -> str:
    """Render the user prompt for one chunk."""
    context_block = f"Context: {document_context}\n" if document_context else ""
    return _USER_PROMPT_TEMPLATE.format(
        context_block=context_block,
        chunk_text=chunk_text,
        categories="|".join(KEYWORD_CATEGORIES),
    )
