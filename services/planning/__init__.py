from .plan_reader import PlanDocumentReader, find_plan_directories, find_plan_directory
from .scoring import (
    calculate_bias_score,
    calculate_dependency_score,
    calculate_priority_score,
    calculate_workload_score,
    is_task_eligible,
    score_task,
    select_next_task,
)
from .task_service import TaskScoringService, tasks_from_plan

__all__ = [
    "PlanDocumentReader",
    "find_plan_directories",
    "find_plan_directory",
    "calculate_bias_score",
    "calculate_dependency_score",
    "calculate_priority_score",
    "calculate_workload_score",
    "is_task_eligible",
    "score_task",
    "select_next_task",
    "TaskScoringService",
    "tasks_from_plan",
]
