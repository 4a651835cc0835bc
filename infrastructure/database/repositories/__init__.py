from .graph_repository import (
    GraphEntityRepository,
    GraphMetaRepository,
    GraphRelationshipRepository,
)

__all__ = [
    "GraphEntityRepository",
    "GraphMetaRepository",
    "GraphRelationshipRepository",
]
