"""Unit tests for the TextChunker — exact-slice, paragraph-aware chunking."""

from __future__ import annotations

import pytest

from docmap.services.chunker import ChunkerConfig, SplitStrategy, TextChunker
from tests.conftest import paragraph

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sentence(i: int) -> str:
    """A 99-character sentence that is unique per *i*."""
    body = f"Sentence {i:02d} describes how local services connect with each other"
    return body.ljust(98, "x") + "."


def _make_chunker(**overrides) -> TextChunker:
    return TextChunker(ChunkerConfig(**overrides))


def _assert_exact_slices(text: str, chunks) -> None:
    for chunk in chunks:
        assert chunk.text == text[chunk.start_char : chunk.end_char]
        assert len(chunk.text) == chunk.char_count


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestBasicChunking:
    def test_empty_text_returns_no_chunks(self) -> None:
        chunker = _make_chunker()
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\n\t  ") == []

    def test_two_paragraphs_become_two_chunks(self) -> None:
        first = paragraph(200, "mentoring")
        second = paragraph(200, "transport")
        text = f"{first}\n\n{second}"

        chunks = _make_chunker(max_chunk_chars=1000).chunk(text, document_id="doc-1")

        assert [c.index for c in chunks] == [0, 1]
        assert chunks[0].text == first
        assert chunks[1].text == second
        assert (chunks[0].start_char, chunks[0].end_char) == (0, 200)
        assert (chunks[1].start_char, chunks[1].end_char) == (202, 402)
        assert all(c.document_id == "doc-1" for c in chunks)

    def test_long_paragraph_packs_whole_sentences(self) -> None:
        sentences = [_sentence(i) for i in range(30)]
        text = " ".join(sentences)
        assert len(text) == 2999

        chunks = _make_chunker(max_chunk_chars=1000).chunk(text)

        assert len(chunks) == 3
        assert all(len(c.text) <= 1000 for c in chunks)
        _assert_exact_slices(text, chunks)
        # Every sentence appears whole in exactly one chunk.
        for sentence in sentences:
            assert sum(sentence in c.text for c in chunks) == 1

    def test_word_counts(self) -> None:
        chunks = _make_chunker(min_chunk_chars=0).chunk("one two three")
        assert chunks[0].word_count == 3


class TestInvariants:
    def test_chunks_are_ordered_and_disjoint(self, sample_text: str) -> None:
        chunks = _make_chunker(max_chunk_chars=120, min_chunk_chars=0).chunk(sample_text)

        assert [c.index for c in chunks] == list(range(len(chunks)))
        _assert_exact_slices(sample_text, chunks)
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end_char <= nxt.start_char

    def test_chunks_cover_all_kept_text(self, sample_text: str) -> None:
        for budget in (40, 120, 400):
            chunks = _make_chunker(max_chunk_chars=budget, min_chunk_chars=0).chunk(sample_text)
            covered = set()
            for chunk in chunks:
                covered.update(range(chunk.start_char, chunk.end_char))
            missing = [
                i for i, ch in enumerate(sample_text) if not ch.isspace() and i not in covered
            ]
            assert missing == []

    def test_multibyte_text_uses_character_offsets(self) -> None:
        text = (
            "Café résumé: naïve coördination between services in Zürich.\n\n"
            "地域の支援サービスは交通と住宅の問題に直面している。若者センターは夕方に閉まる。\n\n"
            "Feedback was positive 👍🏽 overall 🎉, and follow-up 📅 is planned for spring."
        )
        assert len(text.encode("utf-8")) > len(text)

        chunks = _make_chunker(max_chunk_chars=40, min_chunk_chars=0).chunk(text)

        assert chunks
        _assert_exact_slices(text, chunks)
        assert all(len(c.text) <= 40 for c in chunks)
        covered = set()
        for chunk in chunks:
            covered.update(range(chunk.start_char, chunk.end_char))
        assert all(i in covered for i, ch in enumerate(text) if not ch.isspace())
        assert text.index("地域") in [c.start_char for c in chunks]

    def test_chunking_is_deterministic(self, sample_text: str) -> None:
        chunker = _make_chunker(max_chunk_chars=100, min_chunk_chars=0)
        assert chunker.chunk(sample_text) == chunker.chunk(sample_text)

    def test_no_chunk_exceeds_budget(self, sample_text: str) -> None:
        for budget in (40, 75, 150, 400):
            chunks = _make_chunker(max_chunk_chars=budget, min_chunk_chars=0).chunk(sample_text)
            assert chunks
            assert all(len(c.text) <= budget for c in chunks)

    def test_short_chunks_are_dropped(self) -> None:
        text = f"Short.\n\n{paragraph(120)}"
        chunks = _make_chunker(min_chunk_chars=50).chunk(text)

        assert len(chunks) == 1
        assert chunks[0].index == 0
        assert chunks[0].text == paragraph(120)


class TestSentenceSplitting:
    def test_abbreviations_do_not_end_sentences(self) -> None:
        text = "Dr. Smith met the team at noon. The meeting ran long."
        chunks = _make_chunker(max_chunk_chars=35, min_chunk_chars=0).chunk(text)

        assert [c.text for c in chunks] == [
            "Dr. Smith met the team at noon.",
            "The meeting ran long.",
        ]

    def test_oversize_sentence_splits_at_whitespace(self) -> None:
        text = " ".join(["community"] * 30)  # one sentence, no punctuation
        chunks = _make_chunker(max_chunk_chars=50, min_chunk_chars=0).chunk(text)

        assert len(chunks) > 1
        _assert_exact_slices(text, chunks)
        for chunk in chunks:
            assert len(chunk.text) <= 50
            assert chunk.text.split() == ["community"] * len(chunk.text.split())

    def test_single_oversize_token_is_hard_split(self) -> None:
        text = "x" * 250
        chunks = _make_chunker(max_chunk_chars=100, min_chunk_chars=0).chunk(text)

        assert [len(c.text) for c in chunks] == [100, 100, 50]
        assert "".join(c.text for c in chunks) == text

    def test_sentence_strategy_packs_across_paragraphs(self) -> None:
        text = "First point here.\n\nSecond point here.\n\nThird point here."
        paragraph_chunks = _make_chunker(max_chunk_chars=200, min_chunk_chars=0).chunk(text)
        sentence_chunks = _make_chunker(
            max_chunk_chars=200,
            min_chunk_chars=0,
            split_strategy=SplitStrategy.SENTENCE,
        ).chunk(text)

        assert len(paragraph_chunks) == 3
        assert len(sentence_chunks) == 1
        assert sentence_chunks[0].text == text


class TestOverlap:
    def test_overlap_repeats_trailing_sentence(self) -> None:
        sentences = [_sentence(i) for i in range(9)]
        text = " ".join(sentences)
        chunks = _make_chunker(max_chunk_chars=300, overlap_chars=120).chunk(text)

        assert len(chunks) >= 3
        assert chunks[0].text.endswith(sentences[2])
        assert chunks[1].text.startswith(sentences[2])
        _assert_exact_slices(text, chunks)

    def test_overlap_never_duplicates_a_whole_chunk(self) -> None:
        sentences = [_sentence(i) for i in range(6)]
        text = " ".join(sentences)
        chunks = _make_chunker(max_chunk_chars=200, overlap_chars=1000).chunk(text)

        texts = [c.text for c in chunks]
        assert len(texts) == len(set(texts))


class TestConfigValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_chunk_chars": 0},
            {"min_chunk_chars": -1},
            {"overlap_chars": -5},
            {"max_chunk_chars": 100, "min_chunk_chars": 200},
        ],
    )
    def test_invalid_config_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            ChunkerConfig(**kwargs)
