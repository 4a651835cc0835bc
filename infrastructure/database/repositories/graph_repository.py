from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from infrastructure.database.models.graph import GraphEntity, GraphMeta, GraphRelationship


class GraphEntityRepository:
    """Repository helpers for the entities table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_entity(
        self,
        *,
        entity_type: str,
        canonical_id: str,
        name: str,
        source_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> GraphEntity:
        now = timestamp or datetime.now(timezone.utc)
        entity = GraphEntity(
            entity_type=entity_type,
            canonical_id=canonical_id,
            name=name,
            source_path=source_path,
            metadata_json=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        self.db.add(entity)
        self.db.flush()
        return entity

    def get_entity_by_id(self, entity_id: int) -> Optional[GraphEntity]:
        stmt = select(GraphEntity).where(GraphEntity.id == entity_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_entity_by_canonical_id(self, canonical_id: str) -> Optional[GraphEntity]:
        stmt = select(GraphEntity).where(GraphEntity.canonical_id == canonical_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_entities(
        self,
        *,
        entity_type: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> List[GraphEntity]:
        stmt = select(GraphEntity)

        if entity_type:
            stmt = stmt.where(GraphEntity.entity_type == entity_type)
        if source_path:
            stmt = stmt.where(GraphEntity.source_path == source_path)

        stmt = stmt.order_by(GraphEntity.id)
        return list(self.db.execute(stmt).scalars().all())

    def list_entities_by_ids(self, entity_ids: Sequence[int]) -> Dict[int, GraphEntity]:
        unique_ids = {entity_id for entity_id in entity_ids if entity_id is not None}
        if not unique_ids:
            return {}

        stmt = select(GraphEntity).where(GraphEntity.id.in_(unique_ids))
        rows = self.db.execute(stmt).scalars().all()
        return {row.id: row for row in rows}

    def update_entity(
        self,
        entity: GraphEntity,
        *,
        name: str,
        source_path: Optional[str],
        metadata: Optional[Dict[str, Any]],
        timestamp: Optional[datetime] = None,
    ) -> GraphEntity:
        """Overwrite every mutable field and refresh ``updated_at``."""
        entity.name = name
        entity.source_path = source_path
        entity.metadata_json = dict(metadata or {})
        entity.updated_at = timestamp or datetime.now(timezone.utc)
        self.db.flush()
        return entity

    def count_by_type(self) -> Dict[str, int]:
        stmt = select(GraphEntity.entity_type, func.count(GraphEntity.id)).group_by(
            GraphEntity.entity_type
        )
        return {entity_type: count for entity_type, count in self.db.execute(stmt).all()}


class GraphRelationshipRepository:
    """Repository helpers for graph relationships."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_relationship(
        self,
        *,
        source_id: int,
        target_id: int,
        relation_type: str,
        confidence: float = 1.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GraphRelationship:
        relationship = GraphRelationship(
            source_id=source_id,
            target_id=target_id,
            relation_type=relation_type,
            confidence=confidence,
            metadata_json=dict(metadata or {}),
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(relationship)
        self.db.flush()
        return relationship

    def get_relationship_by_identity(
        self,
        *,
        source_id: int,
        target_id: int,
        relation_type: str,
    ) -> Optional[GraphRelationship]:
        stmt = select(GraphRelationship).where(
            GraphRelationship.source_id == source_id,
            GraphRelationship.target_id == target_id,
            GraphRelationship.relation_type == relation_type,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_relationships(
        self,
        *,
        source_ids: Optional[Sequence[int]] = None,
        target_ids: Optional[Sequence[int]] = None,
        relation_type: Optional[str] = None,
    ) -> List[GraphRelationship]:
        stmt = select(GraphRelationship)

        if source_ids:
            stmt = stmt.where(GraphRelationship.source_id.in_(source_ids))
        if target_ids:
            stmt = stmt.where(GraphRelationship.target_id.in_(target_ids))
        if relation_type:
            stmt = stmt.where(GraphRelationship.relation_type == relation_type)

        stmt = stmt.order_by(GraphRelationship.id)
        return list(self.db.execute(stmt).scalars().all())

    def list_relationships_for_entities(self, entity_ids: Sequence[int]) -> List[GraphRelationship]:
        unique_ids = {entity_id for entity_id in entity_ids if entity_id is not None}
        if not unique_ids:
            return []

        stmt = (
            select(GraphRelationship)
            .where(
                or_(
                    GraphRelationship.source_id.in_(unique_ids),
                    GraphRelationship.target_id.in_(unique_ids),
                )
            )
            .order_by(GraphRelationship.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def update_relationship(
        self,
        relationship: GraphRelationship,
        *,
        confidence: float,
        metadata: Optional[Dict[str, Any]],
    ) -> GraphRelationship:
        relationship.confidence = confidence
        relationship.metadata_json = dict(metadata or {})
        self.db.flush()
        return relationship

    def count_by_type(self) -> Dict[str, int]:
        stmt = select(
            GraphRelationship.relation_type, func.count(GraphRelationship.id)
        ).group_by(GraphRelationship.relation_type)
        return {relation_type: count for relation_type, count in self.db.execute(stmt).all()}


class GraphMetaRepository:
    """Key/value bookkeeping for the graph (e.g. last index time)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_value(self, key: str) -> Optional[str]:
        row = self.db.get(GraphMeta, key)
        return row.value if row else None

    def set_value(self, key: str, value: Optional[str]) -> GraphMeta:
        row = self.db.get(GraphMeta, key)
        if row is None:
            row = GraphMeta(key=key, value=value)
            self.db.add(row)
        else:
            row.value = value
            row.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return row
