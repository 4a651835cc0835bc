from .records import (
    AgentRecord,
    AgentStatus,
    FeatureRecord,
    ParsedPlan,
    PlanRecord,
    PlanSignal,
    ScoringOverride,
)
from .scoring import (
    Eligibility,
    NextTaskResult,
    ScoreBreakdown,
    ScoreComponent,
    ScoredTasksResult,
    TaskRecord,
)

__all__ = [
    "AgentRecord",
    "AgentStatus",
    "FeatureRecord",
    "ParsedPlan",
    "PlanRecord",
    "PlanSignal",
    "ScoringOverride",
    "Eligibility",
    "NextTaskResult",
    "ScoreBreakdown",
    "ScoreComponent",
    "ScoredTasksResult",
    "TaskRecord",
]
