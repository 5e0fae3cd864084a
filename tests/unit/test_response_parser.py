"""Unit tests for docmap.services.response_parser."""

from __future__ import annotations

import json

import pytest

from docmap.services.extraction_prompts import EXTRACTION_SYSTEM_PROMPT, build_user_prompt
from docmap.services.response_parser import extract_json_object, parse_extraction_response
from docmap.utils.errors import StructuredOutputError
from tests.conftest import DEFAULT_EXTRACTION


class TestExtractJsonObject:
    def test_bare_json(self) -> None:
        assert extract_json_object('{"themes": []}') == {"themes": []}

    def test_fenced_json(self) -> None:
        raw = 'Here you go:\n```json\n{"themes": [{"name": "Housing"}]}\n```\nThanks!'
        assert extract_json_object(raw)["themes"][0]["name"] == "Housing"

    def test_json_surrounded_by_prose(self) -> None:
        raw = 'Sure. {"keywords": ["transport"]} Let me know if you need more.'
        assert extract_json_object(raw) == {"keywords": ["transport"]}

    @pytest.mark.parametrize("raw", ["", "no json at all", "[1, 2, 3]", "{broken"])
    def test_no_object_raises(self, raw: str) -> None:
        with pytest.raises(StructuredOutputError):
            extract_json_object(raw)


class TestParseExtractionResponse:
    def test_full_response(self) -> None:
        result = parse_extraction_response(DEFAULT_EXTRACTION)

        assert [t.name for t in result.themes] == ["Youth Mentoring"]
        assert result.themes[0].confidence == 0.9
        assert result.quotes[0].speaker == "Participant"
        assert result.insights[0].category == "barrier"
        assert {k.term: k.frequency for k in result.keywords} == {"Youth Hub": 2, "Transport": 1}

    def test_missing_fields_default(self) -> None:
        result = parse_extraction_response('{"themes": [{"name": "Housing"}]}')

        assert result.themes[0].description == ""
        assert result.themes[0].confidence == 0.5
        assert result.quotes == []
        assert result.insights == []
        assert result.keywords == []

    def test_confidence_is_clamped(self) -> None:
        raw = json.dumps(
            {
                "themes": [
                    {"name": "High", "confidence": 7},
                    {"name": "Low", "confidence": -1},
                    {"name": "Text", "confidence": "very"},
                ]
            }
        )
        result = parse_extraction_response(raw)
        assert [t.confidence for t in result.themes] == [1.0, 0.0, 0.5]

    def test_non_finite_numbers_use_defaults(self) -> None:
        raw = (
            '{"themes": [{"name": "Housing", "confidence": Infinity}],'
            ' "insights": [{"text": "Buses stop early", "importance": NaN}],'
            ' "keywords": [{"term": "Transport", "frequency": Infinity},'
            ' {"term": "Housing", "frequency": -Infinity}]}'
        )
        result = parse_extraction_response(raw)

        assert result.themes[0].confidence == 0.5
        assert result.insights[0].confidence == 0.5
        assert {k.term: k.frequency for k in result.keywords} == {"Transport": 1, "Housing": 1}

    def test_alternate_keys_and_plain_strings(self) -> None:
        raw = json.dumps(
            {
                "themes": ["Food security", {"title": "Housing", "evidence": "rent rises"}],
                "quotes": [{"quote": "We need buses.", "attribution": "Resident"}],
                "insights": [{"insight": "Extend hours", "importance": 8}],
                "keywords": [{"keyword": "Food Bank", "category": "SERVICE"}, "rent"],
            }
        )
        result = parse_extraction_response(raw)

        assert [t.name for t in result.themes] == ["Food security", "Housing"]
        assert result.themes[1].description == "rent rises"
        assert result.quotes[0].text == "We need buses."
        assert result.quotes[0].speaker == "Resident"
        assert result.insights[0].confidence == pytest.approx(0.8)
        assert result.keywords[0].category == "service"
        assert result.keywords[1].category == "topic"

    def test_empty_items_are_dropped(self) -> None:
        raw = json.dumps(
            {
                "themes": [{"name": "  "}, {"description": "no name"}, 42],
                "keywords": [{"term": "housing", "frequency": 0}, {"term": "rent", "frequency": "x"}],
            }
        )
        result = parse_extraction_response(raw)

        assert result.themes == []
        assert [k.frequency for k in result.keywords] == [1, 1]

    def test_whitespace_is_collapsed(self) -> None:
        result = parse_extraction_response('{"themes": [{"name": "  Youth \\n  Mentoring "}]}')
        assert result.themes[0].name == "Youth Mentoring"

    def test_error_carries_provider_name(self) -> None:
        with pytest.raises(StructuredOutputError) as excinfo:
            parse_extraction_response("I cannot help with that.", provider_name="openai")
        assert excinfo.value.provider_name == "openai"
        assert str(excinfo.value).startswith("[openai]")


class TestPrompts:
    def test_user_prompt_includes_chunk_and_context(self) -> None:
        prompt = build_user_prompt("Buses stop at 6pm.", "Document: Community Report")
        assert "Buses stop at 6pm." in prompt
        assert "Community Report" in prompt

    def test_system_prompt_requests_json(self) -> None:
        assert "JSON" in EXTRACTION_SYSTEM_PROMPT
