from . import graph  # noqa: F401
from .graph import GraphEntity, GraphMeta, GraphRelationship

__all__ = [
    "graph",
    "GraphEntity",
    "GraphMeta",
    "GraphRelationship",
]
