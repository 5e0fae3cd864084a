"""Systems-map models: entities derived from documents and the graph built from them.

The systems map shows how documents (or the entities inside them) relate
through shared services, themes, outcomes and factors:

    - SystemEntity = one entity mentioned by one document
    - MapNode      = a document or a unique entity, depending on granularity
    - MapEdge      = an undirected weighted connection (a "SystemConnection")
    - SystemsMap   = the complete graph handed to the visualization layer
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SystemEntityType(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    SERVICE = "SERVICE"    # programs, organisations, support systems
    THEME = "THEME"        # issues, challenges, focus areas
    OUTCOME = "OUTCOME"    # goals, impacts, results
    FACTOR = "FACTOR"      # environmental conditions, barriers, enablers


class MapGranularity(str, Enum):  # noqa: UP042
    """What the graph's nodes represent."""

    DOCUMENT = "document"
    ENTITY = "entity"


class SystemEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SystemEntityType
    name: str
    document_id: str
    confidence: float = Field(ge=0.0, le=1.0)


class MapNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    # "document" for document nodes, the entity type value otherwise.
    type: str
    documents: list[str] = Field(default_factory=list)
    entity_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class MapEdge(BaseModel):
    """Undirected weighted edge; ``source`` always sorts before ``target``."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    strength: float = Field(ge=0.0, le=1.0)
    shared: list[str] = Field(default_factory=list)


class SystemsMap(BaseModel):
    model_config = ConfigDict(frozen=True)

    granularity: MapGranularity = MapGranularity.DOCUMENT
    nodes: list[MapNode] = Field(default_factory=list)
    edges: list[MapEdge] = Field(default_factory=list)


class GraphFilters(BaseModel):
    """Filters accepted by the graph query interface."""

    model_config = ConfigDict(frozen=True)

    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    entity_types: list[SystemEntityType] | None = None
    granularity: MapGranularity = MapGranularity.DOCUMENT
    materiality_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
