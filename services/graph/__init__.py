from .conflict_detector import ConflictDetector
from .extractor import EntityExtractor
from .graph_store import GraphStore, open_graph_store
from .reindex import LocalIdMap, ReindexResult, apply_extraction, reindex
from .similarity import FeatureSimilarity, FeatureSimilarityResolver

__all__ = [
    "ConflictDetector",
    "EntityExtractor",
    "GraphStore",
    "open_graph_store",
    "LocalIdMap",
    "ReindexResult",
    "apply_extraction",
    "reindex",
    "FeatureSimilarity",
    "FeatureSimilarityResolver",
]
