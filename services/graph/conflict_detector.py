from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from config.planning import ConflictThresholds
from schemas.conflict import ConflictReport, ConflictSeverity, ConflictType
from schemas.graph import Entity, EntityType, RelationType
from services.graph.graph_store import GraphStore, as_utc

logger = logging.getLogger(__name__)

WIP_STATUS = "WIP"
SECONDS_PER_DAY = 60 * 60 * 24

_WHITE, _GRAY, _BLACK = 0, 1, 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConflictDetector:
    """Read-only health checks over the planning graph.

    Every detector returns an empty list when there is nothing to report.
    """

    def __init__(
        self,
        store: GraphStore,
        thresholds: Optional[ConflictThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.thresholds = thresholds or ConflictThresholds()
        self.clock = clock or _utcnow

    def detect_all(self) -> List[ConflictReport]:
        return [
            *self.detect_file_contention(),
            *self.detect_feature_overlap(),
            *self.detect_circular_dependencies(),
            *self.detect_stale_wip(),
        ]

    def detect_file_contention(self) -> List[ConflictReport]:
        """One error per file modified by two or more WIP agents."""
        modifies = self.store.list_relationships(relation_type=RelationType.MODIFIES)
        if not modifies:
            return []

        sources_by_file: Dict[int, List[int]] = defaultdict(list)
        for relationship in modifies:
            sources_by_file[relationship.target_id].append(relationship.source_id)

        entity_ids = set(sources_by_file)
        for source_ids in sources_by_file.values():
            entity_ids.update(source_ids)
        entities = self.store.get_entities_by_ids(sorted(entity_ids))

        reports: List[ConflictReport] = []
        for file_id in sorted(sources_by_file):
            file_entity = entities.get(file_id)
            if file_entity is None or file_entity.type is not EntityType.FILE:
                continue

            wip_agents: List[Entity] = []
            for source_id in sorted(set(sources_by_file[file_id])):
                agent = entities.get(source_id)
                if agent is None or agent.type is not EntityType.AGENT:
                    continue
                if agent.metadata.get("status") == WIP_STATUS:
                    wip_agents.append(agent)
            if len(wip_agents) < 2:
                continue

            agent_ids = [agent.canonical_id for agent in wip_agents]
            reports.append(
                ConflictReport(
                    type=ConflictType.FILE_CONTENTION,
                    severity=ConflictSeverity.ERROR,
                    affected_entities=[file_entity.canonical_id, *agent_ids],
                    message=(
                        f'File "{file_entity.name}" is modified by {len(wip_agents)} '
                        f"WIP agents: {', '.join(agent_ids)}"
                    ),
                    metadata={"file": file_entity.canonical_id, "agent_count": len(wip_agents)},
                )
            )
        return reports

    def detect_feature_overlap(self) -> List[ConflictReport]:
        """One warning per SIMILAR_TO edge at or above the overlap threshold."""
        threshold = self.thresholds.overlap_threshold
        similar = [
            relationship
            for relationship in self.store.list_relationships(relation_type=RelationType.SIMILAR_TO)
            if relationship.confidence >= threshold
        ]
        if not similar:
            return []

        entity_ids = {rel.source_id for rel in similar} | {rel.target_id for rel in similar}
        entities = self.store.get_entities_by_ids(sorted(entity_ids))

        reports: List[ConflictReport] = []
        for relationship in similar:
            source = entities.get(relationship.source_id)
            target = entities.get(relationship.target_id)
            if source is None or target is None:
                continue
            reports.append(
                ConflictReport(
                    type=ConflictType.FEATURE_OVERLAP,
                    severity=ConflictSeverity.WARNING,
                    affected_entities=[source.canonical_id, target.canonical_id],
                    message=(
                        f'Features "{source.name}" and "{target.name}" are '
                        f"{relationship.confidence * 100:.0f}% similar"
                    ),
                    metadata={"confidence": relationship.confidence, "threshold": threshold},
                )
            )
        return reports

    def detect_circular_dependencies(self) -> List[ConflictReport]:
        """Three-color DFS over DEPENDS_ON edges.

        Nodes and neighbours are visited in ascending id order. A cycle is
        reported once per distinct node set, listed in traversal order.
        """
        depends_on = self.store.list_relationships(relation_type=RelationType.DEPENDS_ON)
        if not depends_on:
            return []

        adjacency: Dict[int, List[int]] = defaultdict(list)
        for relationship in depends_on:
            adjacency[relationship.source_id].append(relationship.target_id)
        for neighbours in adjacency.values():
            neighbours.sort()

        nodes = sorted(set(adjacency) | {t for targets in adjacency.values() for t in targets})
        color: Dict[int, int] = {node: _WHITE for node in nodes}
        cycles: List[List[int]] = []
        seen_cycles = set()

        # Iterative so deep chains don't hit the recursion limit.
        for root in nodes:
            if color[root] != _WHITE:
                continue
            color[root] = _GRAY
            path = [root]
            stack = [(root, iter(adjacency.get(root, ())))]
            while stack:
                node, neighbours = stack[-1]
                advanced = False
                for neighbour in neighbours:
                    if color[neighbour] == _GRAY:
                        cycle = path[path.index(neighbour):]
                        # Keyed by node set: rotations collapse, and so do distinct cycles over the same nodes.
                        key = frozenset(cycle)
                        if key not in seen_cycles:
                            seen_cycles.add(key)
                            cycles.append(cycle)
                    elif color[neighbour] == _WHITE:
                        color[neighbour] = _GRAY
                        path.append(neighbour)
                        stack.append((neighbour, iter(adjacency.get(neighbour, ()))))
                        advanced = True
                        break
                if not advanced:
                    color[node] = _BLACK
                    path.pop()
                    stack.pop()

        if not cycles:
            return []

        entities = self.store.get_entities_by_ids(nodes)

        def label(entity_id: int) -> str:
            entity = entities.get(entity_id)
            return entity.canonical_id if entity else f"unknown:{entity_id}"

        reports: List[ConflictReport] = []
        for cycle in cycles:
            labels = [label(entity_id) for entity_id in cycle]
            reports.append(
                ConflictReport(
                    type=ConflictType.CIRCULAR_DEPENDENCY,
                    severity=ConflictSeverity.ERROR,
                    affected_entities=labels,
                    message=f"Circular dependency detected: {' -> '.join(labels + labels[:1])}",
                    metadata={"length": len(labels)},
                )
            )
        return reports

    def detect_stale_wip(self) -> List[ConflictReport]:
        """WIP agents whose last update is older than the staleness window."""
        now = as_utc(self.clock())
        warning_days = self.thresholds.stale_wip_days
        error_days = self.thresholds.stale_wip_error_days

        reports: List[ConflictReport] = []
        for agent in self.store.find_entities(EntityType.AGENT, {"status": WIP_STATUS}):
            age_days = (now - as_utc(agent.updated_at)).total_seconds() / SECONDS_PER_DAY
            if age_days < warning_days:
                continue
            severity = ConflictSeverity.WARNING
            if error_days is not None and age_days >= error_days:
                severity = ConflictSeverity.ERROR
            whole_days = int(age_days)
            reports.append(
                ConflictReport(
                    type=ConflictType.STALE_WIP,
                    severity=severity,
                    affected_entities=[agent.canonical_id],
                    message=(
                        f'Agent "{agent.name}" ({agent.canonical_id}) has been WIP '
                        f"for {whole_days} days"
                    ),
                    metadata={"days_since_update": whole_days},
                )
            )
        return reports
