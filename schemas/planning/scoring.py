from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from schemas.planning.records import AgentStatus, ScoringOverride


class TaskRecord(BaseModel):
    """One candidate unit of work: an agent within a plan.

    ``plan_scoring`` and ``scoring`` are the plan-level and agent-level
    overrides, applied on top of configuration in that order.
    ``plan_signal_bias`` comes from the plan's priority and severity.
    """

    task_id: str
    plan_id: str
    plan_folder: str
    plan_number: int
    agent_number: str
    ordinal_number: int
    title: str = ""
    status: AgentStatus
    persona: str = "coder"
    dependencies: list[str] = Field(default_factory=list)
    files_touched: list[str] = Field(default_factory=list)
    plan_signal_bias: float = 0.0
    plan_scoring: Optional[ScoringOverride] = None
    scoring: Optional[ScoringOverride] = None


class Eligibility(BaseModel):
    eligible: bool
    reason: Optional[str] = None


class ScoreComponent(BaseModel):
    score: float
    reasons: list[str] = Field(default_factory=list)


class ScoreBreakdown(BaseModel):
    task_id: str
    plan_id: str
    plan_folder: str
    plan_number: int
    agent_number: str
    ordinal_number: int
    title: str
    total_score: float
    dependency_score: float
    priority_score: float
    workload_score: float
    bias_score: float
    max_score: float
    reasons: list[str] = Field(default_factory=list)


class ScoredTasksResult(BaseModel):
    tasks: list[ScoreBreakdown] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class NextTaskResult(BaseModel):
    """``task`` is ``None`` when nothing is eligible; that is not an error."""

    task: Optional[ScoreBreakdown] = None
    other_available: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    warnings: list[str] = Field(default_factory=list)

    @property
    def all_completed(self) -> bool:
        return self.total_tasks > 0 and self.completed_tasks == self.total_tasks
