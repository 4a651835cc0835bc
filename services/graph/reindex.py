"""
Rebuilds the planning graph from plan directories on disk.

Each plan is extracted into a batch whose entity ids are local to that batch.
``LocalIdMap`` translates those ids to store ids; a new map is built for
every plan and dropped afterwards, so two plans that both number their plan
entity ``1`` can never be wired onto each other's entities.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from config.planning import PlanningConfig
from infrastructure.utils.exceptions import GraphStoreError
from schemas.graph import ExtractedEntity, ExtractionResult
from services.graph.extractor import EntityExtractor
from services.graph.graph_store import GraphStore
from services.planning.plan_reader import find_plan_directories

logger = logging.getLogger(__name__)


class ReindexResult(BaseModel):
    plans_processed: int = 0
    entities_upserted: int = 0
    relationships_upserted: int = 0
    documents_changed: int = 0
    warnings: List[str] = Field(default_factory=list)


class LocalIdMap:
    """Local id -> store id for a single extraction batch."""

    def __init__(self) -> None:
        self._ids: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, local_id: int) -> bool:
        return local_id in self._ids

    def record(self, local_id: int, store_id: int) -> None:
        if local_id in self._ids and self._ids[local_id] != store_id:
            raise GraphStoreError(
                f"Local id {local_id} already mapped to {self._ids[local_id]}, not {store_id}"
            )
        self._ids[local_id] = store_id

    def resolve(self, local_id: int) -> int:
        try:
            return self._ids[local_id]
        except KeyError:
            raise GraphStoreError(f"Local id {local_id} has no entity in this batch") from None


def _write_entity(store: GraphStore, entity: ExtractedEntity) -> tuple[int, bool]:
    """Returns the store id and whether a write happened."""
    if entity.reference_only:
        existing = store.get_entity(entity.canonical_id)
        if existing is not None:
            return existing.id, False
    stored = store.upsert_entity(
        entity.type,
        entity.canonical_id,
        entity.name,
        source_path=entity.source_path,
        metadata=entity.metadata,
    )
    return stored.id, True


def changed_documents(store: GraphStore, extraction: ExtractionResult) -> List[str]:
    """Source documents in the batch whose content hash differs from the stored one."""
    hashes: Dict[str, str] = {}
    for entity in extraction.entities:
        content_hash = entity.metadata.get("content_hash")
        if entity.source_path and content_hash and not entity.reference_only:
            hashes[entity.source_path] = content_hash
    return sorted(path for path, content_hash in hashes.items() if store.has_changed(path, content_hash))


def apply_extraction(store: GraphStore, extraction: ExtractionResult) -> tuple[int, int]:
    """Upserts one batch. Returns (entities, relationships) written.

    Does not commit; the caller owns the transaction.
    """
    id_map = LocalIdMap()
    entities_written = 0
    for entity in extraction.entities:
        store_id, written = _write_entity(store, entity)
        id_map.record(entity.local_id, store_id)
        entities_written += int(written)

    relationships_written = 0
    for relationship in extraction.relationships:
        store.upsert_relationship(
            id_map.resolve(relationship.source_local_id),
            id_map.resolve(relationship.target_local_id),
            relationship.relation_type,
            confidence=relationship.confidence,
            metadata=relationship.metadata,
        )
        relationships_written += 1
    return entities_written, relationships_written


def reindex(
    config: PlanningConfig,
    store: GraphStore,
    plan_id: Optional[str] = None,
    extractor: Optional[EntityExtractor] = None,
) -> ReindexResult:
    """Extracts every plan (or the one matching ``plan_id``) into the store.

    Plans run in ascending plan-number order, each in its own transaction.
    A plan that fails is rolled back and reported as a warning; the rest
    still run. Nothing is deleted.
    """
    extractor = extractor or EntityExtractor()
    result = ReindexResult()

    plan_dirs = find_plan_directories(Path(config.plans_path), plan_id)
    if plan_id is not None and not plan_dirs:
        result.warnings.append(f"No plan directory matches '{plan_id}'")

    for plan_dir in plan_dirs:
        try:
            extraction = extractor.extract_plan(plan_dir)
            changed = changed_documents(store, extraction)
            with store.transaction():
                entities, relationships = apply_extraction(store, extraction)
        except Exception as exc:
            logger.exception("Reindex failed for plan %s", plan_dir.name)
            result.warnings.append(f"Failed to index {plan_dir.name}: {exc}")
            continue

        for warning in extraction.warnings:
            logger.warning("%s: %s", plan_dir.name, warning)
            result.warnings.append(f"{plan_dir.name}: {warning}")

        result.plans_processed += 1
        result.entities_upserted += entities
        result.relationships_upserted += relationships
        result.documents_changed += len(changed)

    with store.transaction():
        store.mark_indexed()

    logger.info(
        "Reindexed %d plan(s): %d changed document(s), %d entities, %d relationships, %d warning(s)",
        result.plans_processed,
        result.documents_changed,
        result.entities_upserted,
        result.relationships_upserted,
        len(result.warnings),
    )
    return result
