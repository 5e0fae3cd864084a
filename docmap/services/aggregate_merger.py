"""Merge per-chunk extraction results into one document aggregate.

Every rule here is a function of the *set* of (chunk index, item) pairs
seen for a key, never of the order in which chunks completed.  Confidence
merges with ``max``, frequencies with ``+``, provenance with set union, and
every tie is broken by a fixed ordering.  Permuting the input therefore
yields the same aggregate.

Merge rules by item kind:

    themes    key = normalized name; confidence = max; description = the
              distinct descriptions, sorted and joined with " | "; display
              name from the highest-confidence occurrence
    quotes    key = normalized quote text; confidence = max; speaker from
              the highest-confidence occurrence that names one
    insights  key = normalized text; confidence = max; category from the
              highest-confidence occurrence
    keywords  key = normalized term; frequency = sum; category = the one
              with the highest summed frequency (ties follow
              ``KEYWORD_CATEGORY_ORDER``)

Output lists are sorted by key and ``source_chunks`` are sorted indices.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, TypeVar

from docmap.models.extraction import (
    AggregatedInsight,
    AggregatedKeyword,
    AggregatedQuote,
    AggregatedTheme,
    DocumentAggregate,
    ExtractionResult,
    Insight,
    Keyword,
    Quote,
    Theme,
)
from docmap.utils.confidence import merge_confidence
from docmap.utils.text_normalizer import normalize_key, normalize_quote

_Item = TypeVar("_Item")

# Relevance order used to break ties between keyword categories.
KEYWORD_CATEGORY_ORDER = (
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
_CATEGORY_RANK = {c: i for i, c in enumerate(KEYWORD_CATEGORY_ORDER)}


def _group(
    pairs: Iterable[tuple[int, _Item]],
    key_fn,
) -> dict[str, list[tuple[int, _Item]]]:
    groups: dict[str, list[tuple[int, _Item]]] = defaultdict(list)
    for chunk_index, item in pairs:
        key = key_fn(item)
        if key:
            groups[key].append((chunk_index, item))
    return groups


def _chunks(entries: list[tuple[int, object]]) -> list[int]:
    return sorted({chunk_index for chunk_index, _ in entries})


def merge_themes(pairs: Iterable[tuple[int, Theme]]) -> list[AggregatedTheme]:
    merged: list[AggregatedTheme] = []
    for key, entries in sorted(_group(pairs, lambda t: normalize_key(t.name)).items()):
        themes = [t for _, t in entries]
        best = min(themes, key=lambda t: (-t.confidence, t.name))
        descriptions = sorted({t.description for t in themes if t.description})
        merged.append(
            AggregatedTheme(
                key=key,
                name=best.name,
                description=" | ".join(descriptions),
                confidence=merge_confidence(*(t.confidence for t in themes)),
                source_chunks=_chunks(entries),
            )
        )
    return merged


def merge_quotes(pairs: Iterable[tuple[int, Quote]]) -> list[AggregatedQuote]:
    merged: list[AggregatedQuote] = []
    for key, entries in sorted(_group(pairs, lambda q: normalize_quote(q.text)).items()):
        quotes = [q for _, q in entries]
        best = min(quotes, key=lambda q: (-q.confidence, q.text))
        named = [q for q in quotes if q.speaker]
        speaker = (
            min(named, key=lambda q: (-q.confidence, q.speaker)).speaker if named else None
        )
        merged.append(
            AggregatedQuote(
                key=key,
                text=best.text,
                speaker=speaker,
                confidence=merge_confidence(*(q.confidence for q in quotes)),
                source_chunks=_chunks(entries),
            )
        )
    return merged


def merge_insights(pairs: Iterable[tuple[int, Insight]]) -> list[AggregatedInsight]:
    merged: list[AggregatedInsight] = []
    for key, entries in sorted(_group(pairs, lambda i: normalize_key(i.text)).items()):
        insights = [i for _, i in entries]
        best = min(insights, key=lambda i: (-i.confidence, i.category, i.text))
        merged.append(
            AggregatedInsight(
                key=key,
                text=best.text,
                category=best.category,
                confidence=merge_confidence(*(i.confidence for i in insights)),
                source_chunks=_chunks(entries),
            )
        )
    return merged


def _category_sort_key(category: str, total: int) -> tuple[int, int, str]:
    return (-total, _CATEGORY_RANK.get(category, len(_CATEGORY_RANK)), category)


def merge_keywords(pairs: Iterable[tuple[int, Keyword]]) -> list[AggregatedKeyword]:
    merged: list[AggregatedKeyword] = []
    for key, entries in sorted(_group(pairs, lambda k: normalize_key(k.term)).items()):
        keywords = [k for _, k in entries]
        by_category: dict[str, int] = defaultdict(int)
        for kw in keywords:
            by_category[kw.category] += kw.frequency
        category = min(by_category, key=lambda c: _category_sort_key(c, by_category[c]))
        best = min(keywords, key=lambda k: (-k.frequency, k.term))
        merged.append(
            AggregatedKeyword(
                key=key,
                term=best.term,
                category=category,
                frequency=sum(k.frequency for k in keywords),
                source_chunks=_chunks(entries),
            )
        )
    return merged


def merge_chunk_results(
    document_id: str,
    chunk_results: Iterable[tuple[int, ExtractionResult]],
) -> DocumentAggregate:
    """Merge ``(chunk_index, result)`` pairs into a :class:`DocumentAggregate`.

    Only the extracted items are filled in; chunk counts and failures are
    the orchestrator's to add.
    """
    results = list(chunk_results)
    return DocumentAggregate(
        document_id=document_id,
        themes=merge_themes((i, t) for i, r in results for t in r.themes),
        quotes=merge_quotes((i, q) for i, r in results for q in r.quotes),
        insights=merge_insights((i, x) for i, r in results for x in r.insights),
        keywords=merge_keywords((i, k) for i, r in results for k in r.keywords),
    )
