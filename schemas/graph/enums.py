from enum import StrEnum


class EntityType(StrEnum):
    """Kinds of nodes in the planning graph."""

    PLAN = "plan"
    AGENT = "agent"
    FEATURE = "feature"
    FILE = "file"
    TAG = "tag"


class RelationType(StrEnum):
    """Kinds of directed edges in the planning graph."""

    CONTAINS = "CONTAINS"
    DEPENDS_ON = "DEPENDS_ON"
    MODIFIES = "MODIFIES"
    BLOCKS = "BLOCKS"
    SIMILAR_TO = "SIMILAR_TO"
    TAGGED_WITH = "TAGGED_WITH"


class Direction(StrEnum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"
