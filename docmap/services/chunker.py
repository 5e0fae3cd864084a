"""Text chunking with paragraph boundary preservation and controlled overlap.

Splits a document's full text into :class:`~docmap.models.document.Chunk`
objects no longer than ``max_chunk_chars`` characters.  Every chunk is an
exact slice of the input (``text == full_text[start_char:end_char]``), so
chunks can always be traced back to their position in the document.

The default paragraph strategy has two phases:

1. **Paragraph-preserving** -- The text is split on blank lines.  A
   paragraph that fits the budget becomes exactly one chunk.

2. **Sentence packing** -- A paragraph over budget is split at sentence
   boundaries using an abbreviation-aware splitter (no break after "Dr.",
   "vs.", etc.) and sentences are packed greedily into chunks.  A sentence
   is only ever divided when it alone exceeds the budget.

With ``overlap_chars > 0`` each packed chunk starts with the trailing whole
sentences of the previous chunk that fit in the overlap window.

The chunker is pure: the same text and config always yield the same chunks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import structlog

from docmap.models.document import Chunk
from docmap.utils.text_normalizer import count_words

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT trigger a sentence split.
# "Dr. Smith" should remain one sentence, not split at the period.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "govt",
        "inc",
        "Inc",
        "ltd",
        "Ltd",
        "Co",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")

# (start, end) offsets into the original text.
Span = tuple[int, int]


class SplitStrategy(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"


@dataclass(frozen=True)
class ChunkerConfig:
    """Chunking parameters.

    Attributes
    ----------
    max_chunk_chars:
        Hard upper bound on a chunk's length in characters.
    min_chunk_chars:
        Chunks shorter than this (after stripping) are dropped.
    overlap_chars:
        Size of the window of trailing sentences carried into the next
        packed chunk.  ``0`` disables overlap.
    split_strategy:
        ``PARAGRAPH`` keeps paragraphs whole where possible; ``SENTENCE``
        packs sentences across paragraph boundaries.
    """

    max_chunk_chars: int = 1000
    min_chunk_chars: int = 50
    overlap_chars: int = 0
    split_strategy: SplitStrategy = SplitStrategy.PARAGRAPH

    def __post_init__(self) -> None:
        if self.max_chunk_chars < 1:
            raise ValueError("max_chunk_chars must be positive")
        if self.min_chunk_chars < 0 or self.overlap_chars < 0:
            raise ValueError("min_chunk_chars and overlap_chars must not be negative")
        if self.min_chunk_chars > self.max_chunk_chars:
            raise ValueError("min_chunk_chars must not exceed max_chunk_chars")


class TextChunker:
    """Splits text into bounded chunks that are exact slices of the input.

    Parameters
    ----------
    config:
        Chunking parameters; defaults to :class:`ChunkerConfig` defaults.
    """

    def __init__(self, config: ChunkerConfig | None = None) -> None:
        self._config = config or ChunkerConfig()

    @property
    def config(self) -> ChunkerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, document_id: str = "") -> list[Chunk]:
        """Split *text* into :class:`Chunk` objects.

        Parameters
        ----------
        text:
            The full document text.
        document_id:
            Copied into every chunk.

        Returns
        -------
        list[Chunk]
            Chunks in document order with contiguous 0-based indices.
            Empty or whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(text)
        if self._config.split_strategy is SplitStrategy.SENTENCE:
            units: list[Span] = []
            for para in paragraphs:
                units.extend(self._sentence_units(text, para))
            spans = self._pack(units)
        else:
            spans = []
            for para in paragraphs:
                if para[1] - para[0] <= self._config.max_chunk_chars:
                    spans.append(para)
                else:
                    spans.extend(self._pack(self._sentence_units(text, para)))

        kept = [s for s in spans if s[1] - s[0] >= self._config.min_chunk_chars]
        chunks = [
            Chunk(
                document_id=document_id,
                index=i,
                text=text[start:end],
                start_char=start,
                end_char=end,
                word_count=count_words(text[start:end]),
            )
            for i, (start, end) in enumerate(kept)
        ]

        logger.debug(
            "chunking_complete",
            document_id=document_id or None,
            num_chunks=len(chunks),
            dropped=len(spans) - len(kept),
            strategy=self._config.split_strategy.value,
        )
        return chunks

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _trim(text: str, start: int, end: int) -> Span | None:
        """Shrink ``[start, end)`` past surrounding whitespace; ``None`` if empty."""
        while start < end and text[start].isspace():
            start += 1
        while end > start and text[end - 1].isspace():
            end -= 1
        return (start, end) if end > start else None

    def _split_paragraphs(self, text: str) -> list[Span]:
        """Return trimmed paragraph spans separated by blank lines."""
        spans: list[Span] = []
        last = 0
        for match in _PARAGRAPH_BREAK_RE.finditer(text):
            span = self._trim(text, last, match.start())
            if span:
                spans.append(span)
            last = match.end()
        span = self._trim(text, last, len(text))
        if span:
            spans.append(span)
        return spans

    def _split_sentences(self, text: str, para: Span) -> list[Span]:
        """Split a paragraph span at sentence boundaries, respecting abbreviations.

        Periods after known abbreviations are masked with ``\\x00`` (same
        length, so indices stay aligned with the original text) before the
        boundary search.
        """
        start, end = para
        segment = text[start:end]
        masked = _ABBREVIATION_RE.sub(lambda m: m.group(0)[:-1] + "\x00", segment)

        sentences: list[Span] = []
        last = 0
        for match in _SENTENCE_END_RE.finditer(masked):
            span = self._trim(text, start + last, start + match.start() + 1)
            if span:
                sentences.append(span)
            last = match.end()
        # Trailing text that didn't end with punctuation.
        span = self._trim(text, start + last, end)
        if span:
            sentences.append(span)
        return sentences or [para]

    def _sentence_units(self, text: str, para: Span) -> list[Span]:
        """Sentence spans of *para*, with over-budget sentences divided."""
        units: list[Span] = []
        for sentence in self._split_sentences(text, para):
            if sentence[1] - sentence[0] <= self._config.max_chunk_chars:
                units.append(sentence)
            else:
                units.extend(self._split_long_sentence(text, sentence))
        return units

    def _split_long_sentence(self, text: str, sentence: Span) -> list[Span]:
        """Divide a sentence longer than the budget at whitespace.

        A single token longer than the budget is hard-split.
        """
        limit = self._config.max_chunk_chars
        start, end = sentence
        pieces: list[Span] = []
        while end - start > limit:
            window_end = start + limit
            cut = window_end
            # Last whitespace that leaves a non-empty piece within the budget.
            for pos in range(window_end, start, -1):
                if text[pos].isspace():
                    cut = pos
                    break
            piece = self._trim(text, start, cut)
            if piece:
                pieces.append(piece)
            start = cut
            while start < end and text[start].isspace():
                start += 1
        if end > start:
            pieces.append((start, end))
        return pieces

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(self, units: list[Span]) -> list[Span]:
        """Greedily pack sentence units into chunk spans within the budget.

        A chunk's span runs from its first unit's start to its last unit's
        end, so it includes the original whitespace between sentences.
        """
        limit = self._config.max_chunk_chars
        chunks: list[Span] = []
        current: list[Span] = []

        for unit in units:
            if current and unit[1] - current[0][0] > limit:
                chunks.append((current[0][0], current[-1][1]))
                current = self._overlap_tail(current)
                # Drop overlap from the front until the new unit fits.
                while current and unit[1] - current[0][0] > limit:
                    current.pop(0)
            current.append(unit)

        if current:
            chunks.append((current[0][0], current[-1][1]))
        return chunks

    def _overlap_tail(self, units: list[Span]) -> list[Span]:
        """Trailing units of a flushed chunk whose span fits in ``overlap_chars``.

        Never returns the whole chunk, so consecutive chunks always differ.
        """
        window = self._config.overlap_chars
        if window <= 0 or len(units) < 2:
            return []
        end = units[-1][1]
        tail: list[Span] = []
        for unit in reversed(units[1:]):
            if end - unit[0] > window:
                break
            tail.insert(0, unit)
        return tail
