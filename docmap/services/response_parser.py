"""Turn a model's text answer into a normalized :class:`ExtractionResult`.

Models are asked for bare JSON but routinely wrap it in markdown fences or
surround it with commentary.  :func:`parse_extraction_response` tries
three strategies in order and the first one that yields a JSON object wins:

1. parse the whole body as JSON;
2. parse the first fenced code block (````` ```json ... ``` `````);
3. parse the substring between the first ``{`` and the last ``}``.

The parsed payload is then normalized field by field: missing fields get
defaults, confidences are clamped into [0, 1], alternative key names used
by different models are accepted, and items with no text are dropped.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from docmap.models.extraction import ExtractionResult, Insight, Keyword, Quote, Theme
from docmap.utils.confidence import clamp_confidence
from docmap.utils.errors import StructuredOutputError
from docmap.utils.text_normalizer import collapse_whitespace

# Matches markdown code fences (```json ... ``` or ``` ... ```).  DOTALL lets
# the capture group span multiple lines.
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def extract_json_object(raw: str) -> dict[str, Any]:
    """Locate and decode the JSON object in a model response.

    Raises
    ------
    StructuredOutputError
        If none of the strategies yields a JSON object.
    """
    text = (raw or "").strip()
    candidates: list[str] = [text]

    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        candidates.append(fence_match.group(1).strip())

    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start != -1 and brace_end > brace_start:
        candidates.append(text[brace_start : brace_end + 1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise StructuredOutputError(message="Response did not contain a JSON object")


def parse_extraction_response(raw: str, provider_name: str | None = None) -> ExtractionResult:
    """Parse and normalize a model response into an :class:`ExtractionResult`.

    Parameters
    ----------
    raw:
        The model's text answer.
    provider_name:
        Attached to the error for logging.

    Raises
    ------
    StructuredOutputError
        If the response contains no JSON object.
    """
    try:
        payload = extract_json_object(raw)
    except StructuredOutputError as exc:
        raise StructuredOutputError(message=exc.message, provider_name=provider_name) from exc

    return ExtractionResult(
        themes=[t for t in map(_normalize_theme, _as_list(payload, "themes")) if t],
        quotes=[q for q in map(_normalize_quote, _as_list(payload, "quotes")) if q],
        insights=[i for i in map(_normalize_insight, _as_list(payload, "insights")) if i],
        keywords=[k for k in map(_normalize_keyword, _as_list(payload, "keywords")) if k],
    )


# ---------------------------------------------------------------------------
# Field normalization
# ---------------------------------------------------------------------------

def _as_list(payload: dict[str, Any], key: str) -> list[Any]:
    value = payload.get(key)
    return value if isinstance(value, list) else []


def _text(item: dict[str, Any], *keys: str) -> str:
    """First non-empty string among *keys*, whitespace-collapsed."""
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return collapse_whitespace(value)
    return ""


def _normalize_theme(item: Any) -> Theme | None:
    if isinstance(item, str):
        item = {"name": item}
    if not isinstance(item, dict):
        return None
    name = _text(item, "name", "title", "theme")
    if not name:
        return None
    return Theme(
        name=name,
        description=_text(item, "description", "evidence"),
        confidence=clamp_confidence(item.get("confidence")),
    )


def _normalize_quote(item: Any) -> Quote | None:
    if isinstance(item, str):
        item = {"text": item}
    if not isinstance(item, dict):
        return None
    text = _text(item, "text", "quote")
    if not text:
        return None
    return Quote(
        text=text,
        speaker=_text(item, "speaker", "attribution") or None,
        confidence=clamp_confidence(item.get("confidence")),
    )


def _normalize_insight(item: Any) -> Insight | None:
    if isinstance(item, str):
        item = {"text": item}
    if not isinstance(item, dict):
        return None
    text = _text(item, "text", "insight")
    if not text:
        return None
    confidence = item.get("confidence")
    if confidence is None and isinstance(item.get("importance"), (int, float)):
        # Importance is scored 1-10 by some prompts.
        confidence = item["importance"] / 10
    return Insight(
        text=text,
        category=(_text(item, "category") or "general").lower(),
        confidence=clamp_confidence(confidence),
    )


def _normalize_keyword(item: Any) -> Keyword | None:
    if isinstance(item, str):
        item = {"term": item}
    if not isinstance(item, dict):
        return None
    term = _text(item, "term", "keyword", "name")
    if not term:
        return None
    frequency = item.get("frequency", 1)
    if (
        isinstance(frequency, bool)
        or not isinstance(frequency, (int, float))
        or not math.isfinite(frequency)
    ):
        frequency = 1
    return Keyword(
        term=term,
        category=(_text(item, "category") or "topic").lower(),
        frequency=max(1, int(frequency)),
    )
