from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from itertools import combinations
from typing import FrozenSet, List

from rapidfuzz import fuzz

from config.planning import PlanningConfig
from schemas.graph import Entity, EntityType, RelationType
from services.graph.graph_store import GraphStore

logger = logging.getLogger(__name__)

LEXICAL_WEIGHT = 0.7
STRUCTURAL_WEIGHT = 0.3
DEFAULT_SIMILARITY_THRESHOLD = 0.8

_PUNCTUATION = str.maketrans("", "", string.punctuation)


@dataclass(frozen=True)
class FeatureSimilarity:
    """Similarity between two feature entities, all scores in [0, 1]."""

    source: Entity
    target: Entity
    lexical: float
    structural: float
    combined: float


def clean_name(name: str) -> str:
    return " ".join(name.lower().translate(_PUNCTUATION).split())


def lexical_similarity(left: str, right: str) -> float:
    left, right = clean_name(left), clean_name(right)
    if not left or not right:
        return 0.0
    return fuzz.token_sort_ratio(left, right) / 100.0


def jaccard_similarity(left: FrozenSet[str], right: FrozenSet[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def combine_scores(lexical: float, structural: float) -> float:
    """Weighted mean; the structural term only counts when there is overlap."""
    total_weight = LEXICAL_WEIGHT + (STRUCTURAL_WEIGHT if structural > 0 else 0.0)
    combined = (LEXICAL_WEIGHT * lexical + STRUCTURAL_WEIGHT * structural) / total_weight
    return max(0.0, min(1.0, combined))


class FeatureSimilarityResolver:
    """Infers SIMILAR_TO edges between features.

    Every pair of feature entities is compared by name (rapidfuzz) and by the
    overlap of their graph neighbourhoods. Pairs at or above ``threshold``
    get a SIMILAR_TO edge whose confidence is the combined score, directed
    from the lower entity id to the higher one.
    """

    def __init__(self, store: GraphStore, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.store = store
        self.threshold = threshold

    @classmethod
    def from_config(cls, store: GraphStore, config: PlanningConfig) -> "FeatureSimilarityResolver":
        return cls(store, threshold=config.similarity_threshold)

    def check_new_feature(self, name: str) -> List[Entity]:
        """Existing features a proposed feature name would duplicate, closest first.

        Only names are compared; a feature that is not stored yet has no
        neighbourhood.
        """
        scored = []
        for feature in self.store.find_entities(EntityType.FEATURE):
            score = combine_scores(lexical_similarity(name, feature.name), 0.0)
            if score >= self.threshold:
                scored.append((score, feature))
        scored.sort(key=lambda item: (-item[0], item[1].id))
        return [feature for _, feature in scored]

    def find_similar_features(self) -> List[FeatureSimilarity]:
        features = self.store.find_entities(EntityType.FEATURE)
        neighbours = {feature.id: self._neighbourhood(feature) for feature in features}

        suggestions: List[FeatureSimilarity] = []
        for source, target in combinations(features, 2):
            lexical = lexical_similarity(source.name, target.name)
            structural = jaccard_similarity(neighbours[source.id], neighbours[target.id])
            combined = combine_scores(lexical, structural)
            if combined >= self.threshold:
                suggestions.append(
                    FeatureSimilarity(
                        source=source,
                        target=target,
                        lexical=lexical,
                        structural=structural,
                        combined=combined,
                    )
                )
        suggestions.sort(key=lambda item: (-item.combined, item.source.id, item.target.id))
        return suggestions

    def resolve(self) -> List[FeatureSimilarity]:
        """Writes a SIMILAR_TO edge for every suggestion and commits."""
        suggestions = self.find_similar_features()
        with self.store.transaction():
            for suggestion in suggestions:
                self.store.upsert_relationship(
                    suggestion.source.id,
                    suggestion.target.id,
                    RelationType.SIMILAR_TO,
                    confidence=round(suggestion.combined, 4),
                    metadata={
                        "lexical": round(suggestion.lexical, 4),
                        "structural": round(suggestion.structural, 4),
                    },
                )
        logger.info("Recorded %d feature similarity edge(s)", len(suggestions))
        return suggestions

    def _neighbourhood(self, feature: Entity) -> FrozenSet[str]:
        related: set = set()
        for relationship in self.store.get_relationships(feature.id):
            if relationship.relation_type is RelationType.SIMILAR_TO:
                continue
            other = relationship.target_id if relationship.source_id == feature.id else relationship.source_id
            related.add(other)
        entities = self.store.get_entities_by_ids(list(related))
        return frozenset(entity.canonical_id for entity in entities.values())
