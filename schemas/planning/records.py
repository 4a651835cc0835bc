from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from config.scoring import ScoringBiases, WeightOverrides


class AgentStatus(StrEnum):
    """Lifecycle status of an agent task."""

    GAP = "GAP"
    WIP = "WIP"
    PASS = "PASS"
    BLOCKED = "BLOCKED"


class PlanSignal(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScoringOverride(BaseModel):
    """``scoring`` block of a plan or agent document."""

    model_config = ConfigDict(extra="forbid")

    bias: float = 0.0
    weights: Optional[WeightOverrides] = None
    biases: Optional[ScoringBiases] = None


class FeatureRecord(BaseModel):
    number: str
    name: str


class AgentRecord(BaseModel):
    """Structured view of one agent document."""

    agent_number: str
    title: str
    path: Path
    status: AgentStatus = AgentStatus.GAP
    persona: str = "coder"
    dependencies: list[str] = Field(default_factory=list)
    blocks: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    scoring: Optional[ScoringOverride] = None
    content_hash: Optional[str] = None

    @property
    def ordinal(self) -> int:
        return int(self.agent_number)


class PlanRecord(BaseModel):
    """Structured view of one plan directory's main document."""

    plan_id: str
    folder: str
    title: str
    path: Optional[Path] = None
    status: Optional[str] = None
    priority: Optional[PlanSignal] = None
    severity: Optional[PlanSignal] = None
    tags: list[str] = Field(default_factory=list)
    features: list[FeatureRecord] = Field(default_factory=list)
    scoring: Optional[ScoringOverride] = None
    content_hash: Optional[str] = None

    @property
    def plan_number(self) -> int:
        return int(self.plan_id)


class ParsedPlan(BaseModel):
    """Everything the document reader could recover from a plan directory."""

    directory: Path
    plan: Optional[PlanRecord] = None
    agents: list[AgentRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
