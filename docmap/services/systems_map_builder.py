"""Systems-map graph construction.

Turns the system entities of a set of documents into a node/edge graph.

Two granularities are supported:

* **DOCUMENT** -- nodes are documents.  Each document's "set" is the
  entities it mentions.
* **ENTITY** -- nodes are unique entities.  Each entity's "set" is the
  documents that mention it.

For every pair of nodes whose sets intersect, the edge strength is::

    |shared| / max(|A|, |B|) * (mean_conf(A) + mean_conf(B)) / 2

where ``mean_conf`` is the mean confidence over the node's whole set.
Edges weaker than the materiality threshold are left out.

Entity identity is ``(type, normalized name)``; within one document,
duplicate mentions collapse to the highest confidence.  Node ids are sorted
before pairing so the graph does not depend on input order.

Design pattern: Service (stateless builder, storage-backed facade).
"""

from __future__ import annotations

from collections import defaultdict
from itertools import combinations

import structlog

from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.systems_map import (
    GraphFilters,
    MapEdge,
    MapGranularity,
    MapNode,
    SystemEntity,
    SystemEntityType,
    SystemsMap,
)
from docmap.utils.confidence import mean_confidence
from docmap.utils.text_normalizer import normalize_key

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MATERIALITY_THRESHOLD = 0.3


def entity_identity(entity: SystemEntity) -> str:
    """Stable id for an entity across documents, e.g. ``"SERVICE:youth hub"``."""
    return f"{entity.type.value}:{normalize_key(entity.name)}"


def edge_strength(shared: int, size_a: int, size_b: int, mean_a: float, mean_b: float) -> float:
    """Connection strength between two nodes, in [0, 1]."""
    largest = max(size_a, size_b)
    if shared == 0 or largest == 0:
        return 0.0
    return min(1.0, shared / largest * (mean_a + mean_b) / 2)


class SystemsMapBuilder:
    """Builds :class:`SystemsMap` graphs from system entities.

    Parameters
    ----------
    materiality_threshold:
        Default minimum edge strength; weaker edges are omitted.
    """

    def __init__(self, materiality_threshold: float = DEFAULT_MATERIALITY_THRESHOLD) -> None:
        self._materiality_threshold = materiality_threshold

    def build_graph(
        self,
        entities: list[SystemEntity],
        min_confidence: float = 0.0,
        granularity: MapGranularity = MapGranularity.DOCUMENT,
        materiality_threshold: float | None = None,
        entity_types: list[SystemEntityType] | None = None,
        document_labels: dict[str, str] | None = None,
    ) -> SystemsMap:
        """Build the graph for *entities*.

        Parameters
        ----------
        entities:
            Entities of every document to include, in any order.
        min_confidence:
            Entities below this confidence are ignored.
        granularity:
            Whether nodes are documents or entities.
        materiality_threshold:
            Overrides the builder's default edge threshold.
        entity_types:
            When given, only entities of these types are considered.
        document_labels:
            Display labels for document nodes; the document id otherwise.
        """
        threshold = (
            self._materiality_threshold if materiality_threshold is None else materiality_threshold
        )
        allowed = set(entity_types) if entity_types else None

        # document id -> identity -> (confidence, display name, type)
        per_document: dict[str, dict[str, tuple[float, str, SystemEntityType]]] = defaultdict(dict)
        for entity in entities:
            if entity.confidence < min_confidence:
                continue
            if allowed is not None and entity.type not in allowed:
                continue
            identity = entity_identity(entity)
            current = per_document[entity.document_id].get(identity)
            candidate = (entity.confidence, entity.name, entity.type)
            # Highest confidence wins; ties go to the lexicographically smaller name.
            if current is None or (-candidate[0], candidate[1]) < (-current[0], current[1]):
                per_document[entity.document_id][identity] = candidate

        if granularity is MapGranularity.ENTITY:
            graph = self._entity_graph(per_document, threshold)
        else:
            graph = self._document_graph(per_document, threshold, document_labels or {})

        logger.info(
            "systems_map_built",
            granularity=granularity.value,
            nodes=len(graph.nodes),
            edges=len(graph.edges),
            threshold=threshold,
        )
        return graph

    # ------------------------------------------------------------------
    # Granularities
    # ------------------------------------------------------------------

    def _document_graph(
        self,
        per_document: dict[str, dict[str, tuple[float, str, SystemEntityType]]],
        threshold: float,
        labels: dict[str, str],
    ) -> SystemsMap:
        doc_ids = sorted(per_document)
        means = {d: mean_confidence([c for c, _, _ in per_document[d].values()]) for d in doc_ids}

        nodes = [
            MapNode(
                id=d,
                label=labels.get(d, d),
                type="document",
                documents=[d],
                entity_count=len(per_document[d]),
                confidence=means[d],
            )
            for d in doc_ids
        ]
        edges = self._pair_edges(
            {d: set(per_document[d]) for d in doc_ids},
            means,
            threshold,
        )
        return SystemsMap(granularity=MapGranularity.DOCUMENT, nodes=nodes, edges=edges)

    def _entity_graph(
        self,
        per_document: dict[str, dict[str, tuple[float, str, SystemEntityType]]],
        threshold: float,
    ) -> SystemsMap:
        # identity -> document id -> confidence
        mentions: dict[str, dict[str, float]] = defaultdict(dict)
        display: dict[str, tuple[float, str, SystemEntityType]] = {}
        for doc_id, identities in per_document.items():
            for identity, candidate in identities.items():
                mentions[identity][doc_id] = candidate[0]
                current = display.get(identity)
                if current is None or (-candidate[0], candidate[1]) < (-current[0], current[1]):
                    display[identity] = candidate

        ids = sorted(mentions)
        means = {i: mean_confidence(list(mentions[i].values())) for i in ids}
        nodes = [
            MapNode(
                id=i,
                label=display[i][1],
                type=display[i][2].value,
                documents=sorted(mentions[i]),
                entity_count=len(mentions[i]),
                confidence=means[i],
            )
            for i in ids
        ]
        edges = self._pair_edges({i: set(mentions[i]) for i in ids}, means, threshold)
        return SystemsMap(granularity=MapGranularity.ENTITY, nodes=nodes, edges=edges)

    @staticmethod
    def _pair_edges(
        sets: dict[str, set[str]],
        means: dict[str, float],
        threshold: float,
    ) -> list[MapEdge]:
        edges: list[MapEdge] = []
        for a, b in combinations(sorted(sets), 2):
            shared = sets[a] & sets[b]
            if not shared:
                continue
            strength = edge_strength(len(shared), len(sets[a]), len(sets[b]), means[a], means[b])
            if strength < threshold:
                continue
            edges.append(
                MapEdge(
                    id=f"{a}--{b}",
                    source=a,
                    target=b,
                    strength=strength,
                    shared=sorted(shared),
                )
            )
        return edges


class SystemsMapService:
    """Graph query interface: builds the systems map for stored documents.

    Injected with an :class:`IStorageProvider` to read entities.
    """

    def __init__(
        self,
        storage: IStorageProvider,
        builder: SystemsMapBuilder | None = None,
    ) -> None:
        self._storage = storage
        self._builder = builder or SystemsMapBuilder()

    async def build_graph(
        self,
        document_ids: list[str],
        filters: GraphFilters | None = None,
    ) -> SystemsMap:
        """Build the systems map for *document_ids* using *filters*."""
        filters = filters or GraphFilters()
        entities = await self._storage.get_entities(document_ids)

        labels: dict[str, str] = {}
        for document_id in dict.fromkeys(document_ids):
            document = await self._storage.get_document(document_id)
            if document is not None:
                labels[document_id] = document.display_name

        return self._builder.build_graph(
            entities,
            min_confidence=filters.min_confidence,
            granularity=filters.granularity,
            materiality_threshold=filters.materiality_threshold,
            entity_types=filters.entity_types,
            document_labels=labels,
        )
