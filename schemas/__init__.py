from .conflict import ConflictReport, ConflictSeverity, ConflictType

__all__ = [
    "ConflictReport",
    "ConflictSeverity",
    "ConflictType",
]
