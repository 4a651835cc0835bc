from pydantic import BaseModel, Field
from typing import Any, Optional

from schemas.graph.enums import EntityType, RelationType


class ExtractedEntity(BaseModel):
    """An entity produced by one extraction call.

    ``local_id`` only means something inside the ``ExtractionResult`` that
    holds it; it is never a store id.

    ``reference_only`` marks an entity that the batch points at but does not
    describe (an agent of another plan, say). It is only written when the
    store does not have it yet.
    """

    local_id: int
    type: EntityType
    canonical_id: str
    name: str
    source_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    reference_only: bool = False


class ExtractedRelationship(BaseModel):
    """An edge between two ``ExtractedEntity`` local ids of the same batch."""

    local_id: int
    source_local_id: int
    target_local_id: int
    relation_type: RelationType
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExtractionResult(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
