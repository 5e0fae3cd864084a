"""Unit tests for deriving systems-map entities from aggregates."""

from __future__ import annotations

import pytest

from docmap.models.extraction import AggregatedKeyword, AggregatedTheme, DocumentAggregate
from docmap.models.systems_map import SystemEntityType
from docmap.services.entity_deriver import derive_entities


def _keyword(term: str, category: str, frequency: int = 1) -> AggregatedKeyword:
    return AggregatedKeyword(key=term.lower(), term=term, category=category, frequency=frequency)


class TestDeriveEntities:
    def test_mapping_rules(self) -> None:
        aggregate = DocumentAggregate(
            document_id="doc-1",
            themes=[AggregatedTheme(key="isolation", name="Isolation", confidence=0.85)],
            keywords=[
                _keyword("Youth Hub", "service", 3),
                _keyword("City Council", "organization"),
                _keyword("Employment", "outcome", 2),
                _keyword("Bus timetable", "barrier"),
                _keyword("Housing", "theme"),
                _keyword("Tuesday", "topic"),
            ],
        )

        entities = derive_entities(aggregate)
        by_name = {e.name: e for e in entities}

        assert set(by_name) == {
            "Isolation",
            "Youth Hub",
            "City Council",
            "Employment",
            "Bus timetable",
            "Housing",
        }
        assert by_name["Isolation"].type is SystemEntityType.THEME
        assert by_name["Isolation"].confidence == pytest.approx(0.85)
        assert by_name["Youth Hub"].type is SystemEntityType.SERVICE
        assert by_name["Youth Hub"].confidence == pytest.approx(0.7)
        assert by_name["City Council"].type is SystemEntityType.SERVICE
        assert by_name["Employment"].type is SystemEntityType.OUTCOME
        assert by_name["Bus timetable"].type is SystemEntityType.FACTOR
        assert by_name["Housing"].type is SystemEntityType.THEME
        assert all(e.document_id == "doc-1" for e in entities)

    def test_duplicates_keep_max_confidence(self) -> None:
        aggregate = DocumentAggregate(
            document_id="doc-1",
            themes=[AggregatedTheme(key="housing", name="Housing", confidence=0.55)],
            keywords=[_keyword("housing", "theme", 4)],
        )

        entities = derive_entities(aggregate)

        assert len(entities) == 1
        assert entities[0].type is SystemEntityType.THEME
        assert entities[0].confidence == pytest.approx(0.8)

    def test_sorted_by_type_then_name(self) -> None:
        aggregate = DocumentAggregate(
            document_id="doc-1",
            keywords=[
                _keyword("Zeta Service", "service"),
                _keyword("Alpha Service", "service"),
                _keyword("Wellbeing", "outcome"),
            ],
        )
        names = [e.name for e in derive_entities(aggregate)]
        assert names == ["Wellbeing", "Alpha Service", "Zeta Service"]

    def test_empty_aggregate(self) -> None:
        assert derive_entities(DocumentAggregate(document_id="doc-1")) == []
