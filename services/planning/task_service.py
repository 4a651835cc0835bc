from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from config.planning import PlanningConfig
from config.scoring import get_scoring_biases, get_scoring_weights
from infrastructure.utils.exceptions import PlanNotFoundError, TaskNotFoundError
from schemas.planning import (
    AgentStatus,
    NextTaskResult,
    ParsedPlan,
    ScoreBreakdown,
    ScoredTasksResult,
    TaskRecord,
)
from services.planning.plan_reader import (
    PlanDocumentReader,
    find_plan_directories,
    normalize_agent_ref,
    plan_matches,
)
from services.planning.scoring import plan_signal_bias, rank_tasks, score_task

logger = logging.getLogger(__name__)


def tasks_from_plan(parsed: ParsedPlan) -> List[TaskRecord]:
    """One ``TaskRecord`` per agent of a parsed plan."""
    plan = parsed.plan
    if plan is None:
        return []
    signal_bias = plan_signal_bias(plan.priority, plan.severity)
    return [
        TaskRecord(
            task_id=f"{plan.folder}#{agent.agent_number}",
            plan_id=plan.plan_id,
            plan_folder=plan.folder,
            plan_number=plan.plan_number,
            agent_number=agent.agent_number,
            ordinal_number=agent.ordinal,
            title=agent.title,
            status=agent.status,
            persona=agent.persona,
            dependencies=list(agent.dependencies),
            files_touched=list(agent.files),
            plan_signal_bias=signal_bias,
            plan_scoring=plan.scoring,
            scoring=agent.scoring,
        )
        for agent in parsed.agents
    ]


class TaskScoringService:
    """Answers "what should be worked on next" from the plans on disk.

    Tasks from every plan are loaded so that cross-plan dependencies
    resolve; a ``plan_id`` only narrows which tasks are returned.
    """

    def __init__(
        self,
        config: PlanningConfig,
        reader: Optional[PlanDocumentReader] = None,
        suppress_warnings: bool = False,
    ) -> None:
        self.config = config
        self.reader = reader or PlanDocumentReader()
        self.suppress_warnings = suppress_warnings
        self.weights = get_scoring_weights(config.scoring)
        self.biases = get_scoring_biases(config.scoring)

    def _warn(self, warnings: List[str], message: str) -> None:
        warnings.append(message)
        if not self.suppress_warnings:
            logger.warning(message)

    def load_tasks(self) -> Tuple[List[TaskRecord], List[str]]:
        tasks: List[TaskRecord] = []
        warnings: List[str] = []
        for plan_dir in find_plan_directories(Path(self.config.plans_path)):
            parsed = self.reader.read_plan(plan_dir)
            for warning in parsed.warnings:
                self._warn(warnings, f"{plan_dir.name}: {warning}")
            tasks.extend(tasks_from_plan(parsed))
        return tasks, warnings

    def _require_plan(self, plan_id: str) -> None:
        if not find_plan_directories(Path(self.config.plans_path), plan_id):
            raise PlanNotFoundError(plan_id)

    @staticmethod
    def _in_plan(task: TaskRecord, plan_id: Optional[str]) -> bool:
        return plan_id is None or plan_matches(task.plan_number, task.plan_folder, str(plan_id))

    def _score_all(
        self, tasks: List[TaskRecord], plan_id: Optional[str]
    ) -> List[ScoreBreakdown]:
        scored = []
        for task in tasks:
            if not self._in_plan(task, plan_id):
                continue
            breakdown = score_task(task, tasks, self.weights, self.biases)
            if breakdown is not None:
                scored.append(breakdown)
        return rank_tasks(scored)

    def score_tasks(self, plan_id: Optional[str] = None) -> ScoredTasksResult:
        """Every eligible task, best first."""
        if plan_id is not None:
            self._require_plan(plan_id)
        tasks, warnings = self.load_tasks()
        return ScoredTasksResult(tasks=self._score_all(tasks, plan_id), warnings=warnings)

    def next_task(self, plan_id: Optional[str] = None) -> NextTaskResult:
        """The single best eligible task; ``task`` is ``None`` if there is none."""
        if plan_id is not None:
            self._require_plan(plan_id)
        tasks, warnings = self.load_tasks()
        ranked = self._score_all(tasks, plan_id)
        in_scope = [task for task in tasks if self._in_plan(task, plan_id)]
        return NextTaskResult(
            task=ranked[0] if ranked else None,
            other_available=max(0, len(ranked) - 1),
            total_tasks=len(in_scope),
            completed_tasks=sum(1 for task in in_scope if task.status is AgentStatus.PASS),
            warnings=warnings,
        )

    def score_task_by_id(self, task_id: str) -> Optional[ScoreBreakdown]:
        """Breakdown for ``<plan>#<agent>``, or ``None`` if that task is not eligible."""
        plan_part, separator, agent_part = task_id.partition("#")
        agent_number = normalize_agent_ref(agent_part) if separator else None
        if not plan_part or agent_number is None or "#" in agent_number:
            raise TaskNotFoundError(task_id)

        self._require_plan(plan_part)
        tasks, _ = self.load_tasks()
        for task in tasks:
            if task.agent_number == agent_number and self._in_plan(task, plan_part):
                return score_task(task, tasks, self.weights, self.biases)
        raise TaskNotFoundError(task_id)
