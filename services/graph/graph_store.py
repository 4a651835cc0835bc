from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy.orm import Session

from config.planning import PlanningConfig
from infrastructure.database.database import open_session
from infrastructure.database.models.graph import GraphEntity, GraphRelationship
from infrastructure.database.repositories import (
    GraphEntityRepository,
    GraphMetaRepository,
    GraphRelationshipRepository,
)
from infrastructure.utils.exceptions import EntityReferenceError
from schemas.graph import Direction, Entity, EntityType, GraphStats, RelationType, Relationship

logger = logging.getLogger(__name__)

LAST_INDEXED_KEY = "last_indexed"
MAX_PATH_DEPTH = 10
MAX_PATHS = 1000
DEFAULT_MAX_PATHS = 25


def as_utc(value: datetime) -> datetime:
    """SQLite hands timestamps back without tzinfo; they were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_entity(row: GraphEntity) -> Entity:
    return Entity(
        id=row.id,
        type=EntityType(row.entity_type),
        canonical_id=row.canonical_id,
        name=row.name,
        source_path=row.source_path,
        metadata=dict(row.metadata_json or {}),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_relationship(row: GraphRelationship) -> Relationship:
    return Relationship(
        id=row.id,
        source_id=row.source_id,
        target_id=row.target_id,
        relation_type=RelationType(row.relation_type),
        confidence=row.confidence,
        metadata=dict(row.metadata_json or {}),
        created_at=as_utc(row.created_at),
    )


class GraphStore:
    """Entity/relationship storage for the planning graph.

    Writes are flushed immediately so new rows get ids, but only committed
    by ``transaction()`` (or by whoever owns the session).
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.entity_repository = GraphEntityRepository(db)
        self.relationship_repository = GraphRelationshipRepository(db)
        self.meta_repository = GraphMetaRepository(db)

    @contextmanager
    def transaction(self) -> Iterator["GraphStore"]:
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # --- Writes ---

    def upsert_entity(
        self,
        entity_type: EntityType | str,
        canonical_id: str,
        name: str,
        source_path: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Entity:
        entity_type = EntityType(entity_type)
        payload = dict(metadata or {})

        existing = self.entity_repository.get_entity_by_canonical_id(canonical_id)
        if existing is None:
            row = self.entity_repository.create_entity(
                entity_type=entity_type.value,
                canonical_id=canonical_id,
                name=name,
                source_path=source_path,
                metadata=payload,
            )
        else:
            if existing.entity_type != entity_type.value:
                logger.warning(
                    "Entity %s stored as %s is being upserted as %s; keeping stored type.",
                    canonical_id,
                    existing.entity_type,
                    entity_type.value,
                )
            row = self.entity_repository.update_entity(
                existing,
                name=name,
                source_path=source_path,
                metadata=payload,
            )
        return _to_entity(row)

    def upsert_relationship(
        self,
        source_id: int,
        target_id: int,
        relation_type: RelationType | str,
        confidence: float = 1.0,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Relationship:
        relation_type = RelationType(relation_type)
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")

        found = self.entity_repository.list_entities_by_ids([source_id, target_id])
        missing = [entity_id for entity_id in (source_id, target_id) if entity_id not in found]
        if missing:
            raise EntityReferenceError(missing, relation_type.value)

        existing = self.relationship_repository.get_relationship_by_identity(
            source_id=source_id,
            target_id=target_id,
            relation_type=relation_type.value,
        )
        if existing is None:
            row = self.relationship_repository.create_relationship(
                source_id=source_id,
                target_id=target_id,
                relation_type=relation_type.value,
                confidence=confidence,
                metadata=dict(metadata or {}),
            )
        else:
            row = self.relationship_repository.update_relationship(
                existing,
                confidence=confidence,
                metadata=dict(metadata or {}),
            )
        return _to_relationship(row)

    def mark_indexed(self, timestamp: Optional[datetime] = None) -> None:
        moment = timestamp or datetime.now(timezone.utc)
        self.meta_repository.set_value(LAST_INDEXED_KEY, moment.isoformat())

    # --- Reads ---

    def get_entity(self, canonical_id: str) -> Optional[Entity]:
        row = self.entity_repository.get_entity_by_canonical_id(canonical_id)
        return _to_entity(row) if row else None

    def get_entity_by_id(self, entity_id: int) -> Optional[Entity]:
        row = self.entity_repository.get_entity_by_id(entity_id)
        return _to_entity(row) if row else None

    def get_entities_by_ids(self, entity_ids: List[int]) -> Dict[int, Entity]:
        rows = self.entity_repository.list_entities_by_ids(entity_ids)
        return {entity_id: _to_entity(row) for entity_id, row in rows.items()}

    def find_entities(
        self,
        entity_type: Optional[EntityType | str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> List[Entity]:
        """Entities of a type whose metadata contains every given key/value."""
        type_value = EntityType(entity_type).value if entity_type else None
        rows = self.entity_repository.list_entities(entity_type=type_value)
        entities = [_to_entity(row) for row in rows]
        if not metadata:
            return entities
        return [
            entity
            for entity in entities
            if all(entity.metadata.get(key) == value for key, value in metadata.items())
        ]

    def get_entities_by_source(self, source_path: str) -> List[Entity]:
        rows = self.entity_repository.list_entities(source_path=source_path)
        return [_to_entity(row) for row in rows]

    def list_relationships(
        self,
        relation_type: Optional[RelationType | str] = None,
        source_id: Optional[int] = None,
        target_id: Optional[int] = None,
    ) -> List[Relationship]:
        rows = self.relationship_repository.list_relationships(
            source_ids=[source_id] if source_id is not None else None,
            target_ids=[target_id] if target_id is not None else None,
            relation_type=RelationType(relation_type).value if relation_type else None,
        )
        return [_to_relationship(row) for row in rows]

    def get_relationships(
        self,
        entity_id: int,
        direction: Direction | str = Direction.BOTH,
    ) -> List[Relationship]:
        direction = Direction(direction)
        if direction is Direction.OUTGOING:
            return self.list_relationships(source_id=entity_id)
        if direction is Direction.INCOMING:
            return self.list_relationships(target_id=entity_id)
        rows = self.relationship_repository.list_relationships_for_entities([entity_id])
        return [_to_relationship(row) for row in rows]

    def get_neighbors(
        self,
        entity_id: int,
        relation_type: Optional[RelationType | str] = None,
    ) -> List[Entity]:
        """Targets of outgoing edges from ``entity_id``."""
        relationships = self.list_relationships(relation_type=relation_type, source_id=entity_id)
        targets = self.get_entities_by_ids([rel.target_id for rel in relationships])
        return [targets[rel.target_id] for rel in relationships if rel.target_id in targets]

    def find_paths(
        self,
        from_id: int,
        to_id: int,
        max_depth: int,
        max_paths: int = DEFAULT_MAX_PATHS,
    ) -> Optional[List[List[Entity]]]:
        """Simple paths along outgoing edges, shortest first.

        Depth is capped at ``MAX_PATH_DEPTH`` and the path count is clamped to
        ``[1, MAX_PATHS]``. Returns ``None`` when ``max_depth < 1`` or either
        endpoint does not exist.
        """
        if max_depth < 1:
            return None
        depth_limit = min(max_depth, MAX_PATH_DEPTH)
        path_limit = max(1, min(max_paths, MAX_PATHS))

        start = self.get_entity_by_id(from_id)
        target = self.get_entity_by_id(to_id)
        if start is None or target is None:
            return None
        if from_id == to_id:
            return [[start]]

        found: List[List[Entity]] = []
        queue = deque([[start]])
        while queue:
            path = queue.popleft()
            if len(path) - 1 >= depth_limit:
                continue
            visited = {entity.id for entity in path}
            for neighbor in self.get_neighbors(path[-1].id):
                if neighbor.id in visited:
                    continue
                extended = path + [neighbor]
                if neighbor.id == to_id:
                    found.append(extended)
                    if len(found) >= path_limit:
                        return found
                else:
                    queue.append(extended)
        return found

    def has_changed(self, source_path: str, content_hash: str) -> bool:
        """True unless every entity from ``source_path`` carries ``content_hash``."""
        existing = self.get_entities_by_source(source_path)
        if not existing:
            return True
        return any(entity.metadata.get("content_hash") != content_hash for entity in existing)

    def get_stats(self) -> GraphStats:
        entity_counts = {entity_type: 0 for entity_type in EntityType}
        for type_value, count in self.entity_repository.count_by_type().items():
            entity_counts[EntityType(type_value)] = count

        relation_counts = {relation_type: 0 for relation_type in RelationType}
        for type_value, count in self.relationship_repository.count_by_type().items():
            relation_counts[RelationType(type_value)] = count

        return GraphStats(
            entity_counts=entity_counts,
            relation_counts=relation_counts,
            total_entities=sum(entity_counts.values()),
            total_relations=sum(relation_counts.values()),
            last_indexed=self.meta_repository.get_value(LAST_INDEXED_KEY),
        )


def open_graph_store(config: PlanningConfig) -> GraphStore:
    """Graph store on the database ``config`` points at, tables created if missing."""
    return GraphStore(open_session(config.graph_database_url()))
