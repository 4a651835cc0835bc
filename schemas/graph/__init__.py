from .enums import Direction, EntityType, RelationType
from .entity import (
    Entity,
    GraphStats,
    Relationship,
    agent_canonical_id,
    feature_canonical_id,
    file_canonical_id,
    plan_canonical_id,
    tag_canonical_id,
)
from .extraction import ExtractedEntity, ExtractedRelationship, ExtractionResult

__all__ = [
    "Direction",
    "EntityType",
    "RelationType",
    "Entity",
    "GraphStats",
    "Relationship",
    "agent_canonical_id",
    "feature_canonical_id",
    "file_canonical_id",
    "plan_canonical_id",
    "tag_canonical_id",
    "ExtractedEntity",
    "ExtractedRelationship",
    "ExtractionResult",
]
