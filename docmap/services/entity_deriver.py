"""Derive systems-map entities from a document aggregate.

Mapping rules:

    aggregated theme                       -> THEME   (theme confidence)
    keyword category service / organization
                     / program             -> SERVICE
    keyword category outcome               -> OUTCOME
    keyword category factor / barrier
                     / enabler             -> FACTOR
    keyword category theme                 -> THEME

Keyword-derived entities have no model-reported confidence, so one is
computed from the keyword's total frequency (see
:func:`~docmap.utils.confidence.keyword_confidence`).  Entities with the
same (type, normalized name) are collapsed, keeping the maximum confidence.
"""

from __future__ import annotations

from docmap.models.extraction import DocumentAggregate
from docmap.models.systems_map import SystemEntity, SystemEntityType
from docmap.utils.confidence import keyword_confidence
from docmap.utils.text_normalizer import normalize_key

_KEYWORD_TYPES: dict[str, SystemEntityType] = {
    "service": SystemEntityType.SERVICE,
    "organization": SystemEntityType.SERVICE,
    "organisation": SystemEntityType.SERVICE,
    "program": SystemEntityType.SERVICE,
    "programme": SystemEntityType.SERVICE,
    "outcome": SystemEntityType.OUTCOME,
    "factor": SystemEntityType.FACTOR,
    "barrier": SystemEntityType.FACTOR,
    "enabler": SystemEntityType.FACTOR,
    "theme": SystemEntityType.THEME,
}


def derive_entities(aggregate: DocumentAggregate) -> list[SystemEntity]:
    """Return the system entities mentioned by one document.

    The result is sorted by (type, normalized name) and contains at most
    one entity per identity.
    """
    best: dict[tuple[SystemEntityType, str], SystemEntity] = {}

    def _add(entity_type: SystemEntityType, name: str, confidence: float) -> None:
        key = (entity_type, normalize_key(name))
        if not key[1]:
            return
        current = best.get(key)
        if current is None or confidence > current.confidence:
            best[key] = SystemEntity(
                type=entity_type,
                name=name,
                document_id=aggregate.document_id,
                confidence=confidence,
            )

    for theme in aggregate.themes:
        _add(SystemEntityType.THEME, theme.name, theme.confidence)
    for keyword in aggregate.keywords:
        entity_type = _KEYWORD_TYPES.get(keyword.category)
        if entity_type is not None:
            _add(entity_type, keyword.term, keyword_confidence(keyword.frequency))

    return [best[k] for k in sorted(best, key=lambda k: (k[0].value, k[1]))]
