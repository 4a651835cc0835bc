from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from schemas.graph import (
    EntityType,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionResult,
    RelationType,
    agent_canonical_id,
    feature_canonical_id,
    file_canonical_id,
    plan_canonical_id,
    tag_canonical_id,
)
from schemas.planning import AgentRecord, PlanRecord
from services.planning.plan_reader import PlanDocumentReader

logger = logging.getLogger(__name__)


def normalize_file_path(value: str) -> str:
    path = value.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def split_agent_ref(plan_id: str, ref: str) -> Tuple[str, str]:
    """``"003"`` -> (plan_id, "003"); ``"0002#003"`` -> ("0002", "003")."""
    if "#" in ref:
        other_plan, agent_number = ref.split("#", 1)
        return other_plan, agent_number
    return plan_id, ref


class _ExtractionBatch:
    """Accumulates one extraction result with sequential local ids."""

    def __init__(self) -> None:
        self.result = ExtractionResult()
        self._by_canonical: Dict[str, ExtractedEntity] = {}
        self._edges: set = set()

    def add_entity(
        self,
        entity_type: EntityType,
        canonical_id: str,
        name: str,
        source_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        reference_only: bool = False,
    ) -> ExtractedEntity:
        existing = self._by_canonical.get(canonical_id)
        if existing is not None:
            if existing.reference_only and not reference_only:
                existing.name = name
                existing.source_path = source_path
                existing.metadata = dict(metadata or {})
                existing.reference_only = False
            return existing

        entity = ExtractedEntity(
            local_id=len(self.result.entities) + 1,
            type=entity_type,
            canonical_id=canonical_id,
            name=name,
            source_path=source_path,
            metadata=dict(metadata or {}),
            reference_only=reference_only,
        )
        self._by_canonical[canonical_id] = entity
        self.result.entities.append(entity)
        return entity

    def get(self, canonical_id: str) -> Optional[ExtractedEntity]:
        return self._by_canonical.get(canonical_id)

    def add_relationship(
        self,
        source: ExtractedEntity,
        target: ExtractedEntity,
        relation_type: RelationType,
        confidence: float = 1.0,
    ) -> None:
        if source.local_id == target.local_id:
            return
        key = (source.local_id, target.local_id, relation_type)
        if key in self._edges:
            return
        self._edges.add(key)
        self.result.relationships.append(
            ExtractedRelationship(
                local_id=len(self.result.relationships) + 1,
                source_local_id=source.local_id,
                target_local_id=target.local_id,
                relation_type=relation_type,
                confidence=confidence,
            )
        )


class EntityExtractor:
    """Builds a self-contained entity/relationship batch for one plan.

    Reads documents through ``PlanDocumentReader`` and never touches the
    graph store. Local ids start at 1 on every call.
    """

    def __init__(self, reader: Optional[PlanDocumentReader] = None) -> None:
        self.reader = reader or PlanDocumentReader()

    def extract_plan(self, plan_dir: Path) -> ExtractionResult:
        parsed = self.reader.read_plan(Path(plan_dir))
        batch = _ExtractionBatch()
        batch.result.warnings.extend(parsed.warnings)

        plan = parsed.plan
        if plan is None:
            return batch.result

        plan_entity = batch.add_entity(
            EntityType.PLAN,
            plan_canonical_id(plan.plan_id),
            plan.title,
            source_path=str(plan.path) if plan.path else None,
            metadata={
                "plan_id": plan.plan_id,
                "folder": plan.folder,
                "status": plan.status,
                "priority": plan.priority.value if plan.priority else None,
                "severity": plan.severity.value if plan.severity else None,
                "content_hash": plan.content_hash,
            },
        )

        for feature in plan.features:
            feature_entity = batch.add_entity(
                EntityType.FEATURE,
                feature_canonical_id(plan.plan_id, feature.number),
                feature.name,
                source_path=str(plan.path) if plan.path else None,
                metadata={
                    "plan_id": plan.plan_id,
                    "feature_number": feature.number,
                    "content_hash": plan.content_hash,
                },
            )
            batch.add_relationship(plan_entity, feature_entity, RelationType.CONTAINS)

        # Agents first so in-plan references resolve to the real entities.
        agent_entities = []
        for agent in parsed.agents:
            agent_entity = batch.add_entity(
                EntityType.AGENT,
                agent_canonical_id(plan.plan_id, agent.agent_number),
                agent.title,
                source_path=str(agent.path),
                metadata={
                    "plan_id": plan.plan_id,
                    "agent_number": agent.agent_number,
                    "status": agent.status.value,
                    "persona": agent.persona,
                    "content_hash": agent.content_hash,
                },
            )
            batch.add_relationship(plan_entity, agent_entity, RelationType.CONTAINS)
            agent_entities.append((agent, agent_entity))

        self._link_tags(batch, plan_entity, plan.tags)
        for agent, agent_entity in agent_entities:
            self._link_agent(batch, plan, agent, agent_entity)

        logger.debug(
            "Extracted %d entities and %d relationships from %s",
            len(batch.result.entities),
            len(batch.result.relationships),
            plan.folder,
        )
        return batch.result

    def _link_agent(
        self,
        batch: _ExtractionBatch,
        plan: PlanRecord,
        agent: AgentRecord,
        agent_entity: ExtractedEntity,
    ) -> None:
        for ref in agent.dependencies:
            target = self._agent_reference(batch, plan.plan_id, ref)
            batch.add_relationship(agent_entity, target, RelationType.DEPENDS_ON)

        for ref in agent.blocks:
            target = self._agent_reference(batch, plan.plan_id, ref)
            batch.add_relationship(agent_entity, target, RelationType.BLOCKS)

        for raw_path in agent.files:
            path = normalize_file_path(raw_path)
            if not path:
                continue
            file_entity = batch.add_entity(
                EntityType.FILE,
                file_canonical_id(path),
                path,
                metadata={"path": path},
            )
            batch.add_relationship(agent_entity, file_entity, RelationType.MODIFIES)

        self._link_tags(batch, agent_entity, agent.tags)

    @staticmethod
    def _agent_reference(batch: _ExtractionBatch, plan_id: str, ref: str) -> ExtractedEntity:
        ref_plan, agent_number = split_agent_ref(plan_id, ref)
        canonical_id = agent_canonical_id(ref_plan, agent_number)
        existing = batch.get(canonical_id)
        if existing is not None:
            return existing
        return batch.add_entity(
            EntityType.AGENT,
            canonical_id,
            f"Agent {agent_number}",
            metadata={"plan_id": ref_plan, "agent_number": agent_number},
            reference_only=True,
        )

    @staticmethod
    def _link_tags(batch: _ExtractionBatch, source: ExtractedEntity, tags) -> None:
        for tag in tags:
            tag_entity = batch.add_entity(EntityType.TAG, tag_canonical_id(tag), tag)
            batch.add_relationship(source, tag_entity, RelationType.TAGGED_WITH)
