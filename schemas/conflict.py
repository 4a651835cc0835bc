from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ConflictType(StrEnum):
    FILE_CONTENTION = "file_contention"
    FEATURE_OVERLAP = "feature_overlap"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    STALE_WIP = "stale_wip"


class ConflictSeverity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


class ConflictReport(BaseModel):
    type: ConflictType = Field(..., description="Detector that produced the finding")
    severity: ConflictSeverity
    affected_entities: list[str] = Field(
        default_factory=list, description="Canonical ids of the entities involved"
    )
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
