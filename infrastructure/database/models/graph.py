from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from infrastructure.database.database import Base
from schemas.graph.enums import EntityType, RelationType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class GraphEntity(Base):
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column("type", String(32), nullable=False, index=True)
    canonical_id = Column(String(512), nullable=False, unique=True, index=True)
    name = Column(String(512), nullable=False)
    source_path = Column(Text, nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    outgoing_relationships = relationship(
        "GraphRelationship",
        foreign_keys="GraphRelationship.source_id",
        back_populates="source_entity",
        passive_deletes=True,
    )
    incoming_relationships = relationship(
        "GraphRelationship",
        foreign_keys="GraphRelationship.target_id",
        back_populates="target_entity",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(_in_list("type", [t.value for t in EntityType]), name="ck_entities_type"),
    )


class GraphRelationship(Base):
    __tablename__ = "relationships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_id = Column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    relation_type = Column(String(32), nullable=False, index=True)
    confidence = Column(Float, nullable=False, default=1.0)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    source_entity = relationship(
        "GraphEntity",
        foreign_keys=[source_id],
        back_populates="outgoing_relationships",
    )
    target_entity = relationship(
        "GraphEntity",
        foreign_keys=[target_id],
        back_populates="incoming_relationships",
    )

    __table_args__ = (
        UniqueConstraint(
            "source_id",
            "target_id",
            "relation_type",
            name="uq_relationships_identity",
        ),
        CheckConstraint(
            _in_list("relation_type", [t.value for t in RelationType]),
            name="ck_relationships_type",
        ),
        CheckConstraint("confidence >= 0.0 AND confidence <= 1.0", name="ck_relationships_confidence"),
    )


class GraphMeta(Base):
    __tablename__ = "graph_meta"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
