from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.graph.enums import EntityType, RelationType


class Entity(BaseModel):
    """A stored graph node.

    ``id`` is the store-assigned surrogate key. ``canonical_id`` is the stable
    identity used to match the same node across reindex runs.
    """

    id: int
    type: EntityType
    canonical_id: str
    name: str
    source_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Relationship(BaseModel):
    """A stored directed, typed edge between two entities."""

    id: int
    source_id: int
    target_id: int
    relation_type: RelationType
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class GraphStats(BaseModel):
    entity_counts: dict[EntityType, int]
    relation_counts: dict[RelationType, int]
    total_entities: int
    total_relations: int
    last_indexed: Optional[str] = None


def plan_canonical_id(plan_id: str) -> str:
    return f"plan:{plan_id}"


def agent_canonical_id(plan_id: str, agent_number: str) -> str:
    return f"agent:{plan_id}#{agent_number}"


def feature_canonical_id(plan_id: str, feature_number: str) -> str:
    return f"feature:{plan_id}#{feature_number}"


def file_canonical_id(path: str) -> str:
    return f"file:{path}"


def tag_canonical_id(tag: str) -> str:
    return f"tag:{tag}"
