"""
Eligibility and scoring for plan agents.

A task is eligible when it is ``GAP`` and every dependency is ``PASS``.
Eligible tasks score::

    total = dependency + priority + workload + bias   (floored at 0)

``dependency`` is all-or-nothing, ``priority`` decays to 0 over ten agent
ordinals, ``workload`` decays to 0 over six touched files. Each is capped by
its weight. Weights cascade config -> plan ``scoring.weights`` -> agent
``scoring.weights``; bias contributions from every level add up.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config.scoring import ScoringBiases, ScoringWeights, merge_weights
from schemas.planning import (
    AgentStatus,
    Eligibility,
    PlanSignal,
    ScoreBreakdown,
    ScoreComponent,
    ScoringOverride,
    TaskRecord,
)
from services.planning.plan_reader import normalize_agent_ref, plan_matches

logger = logging.getLogger(__name__)

PRIORITY_DECAY_STEPS = 10
WORKLOAD_DECAY_STEPS = 6

PLAN_SIGNAL_WEIGHTS: Dict[PlanSignal, float] = {
    PlanSignal.LOW: 0,
    PlanSignal.MEDIUM: 5,
    PlanSignal.HIGH: 10,
    PlanSignal.CRITICAL: 20,
}


def plan_signal_bias(priority: Optional[PlanSignal], severity: Optional[PlanSignal]) -> float:
    """Bias a plan earns from its ``priority`` and ``severity`` frontmatter."""
    total = 0.0
    for signal in (priority, severity):
        if signal is not None:
            total += PLAN_SIGNAL_WEIGHTS[signal]
    return total


def _format_bias(value: float) -> str:
    text = f"{value:g}"
    return f"+{text}" if value > 0 else text


def _dependency_key(task: TaskRecord, ref: str) -> Optional[Tuple[int, str]]:
    """``(plan_number, agent_number)`` for a reference; ``None`` if it is not one."""
    normalized = normalize_agent_ref(ref)
    if normalized is None:
        return None
    if "#" in normalized:
        plan_part, agent_number = normalized.split("#", 1)
        return int(plan_part), agent_number
    return task.plan_number, normalized


def _index_tasks(all_tasks: Iterable[TaskRecord]) -> Dict[Tuple[int, str], TaskRecord]:
    return {(task.plan_number, task.agent_number): task for task in all_tasks}


def _unsatisfied_dependencies(task: TaskRecord, index: Dict[Tuple[int, str], TaskRecord]) -> List[str]:
    unsatisfied = []
    for ref in task.dependencies:
        dependency = index.get(_dependency_key(task, ref))
        if dependency is None or dependency.status is not AgentStatus.PASS:
            unsatisfied.append(ref)
    return unsatisfied


def is_task_eligible(task: TaskRecord, all_tasks: Sequence[TaskRecord]) -> Eligibility:
    if task.status is not AgentStatus.GAP:
        return Eligibility(eligible=False, reason=f"Status is {task.status.value}, not GAP")

    index = _index_tasks(all_tasks)
    for ref in task.dependencies:
        dependency = index.get(_dependency_key(task, ref))
        if dependency is None:
            return Eligibility(eligible=False, reason=f"Dependency {ref} not found")
        if dependency.status is not AgentStatus.PASS:
            return Eligibility(
                eligible=False,
                reason=f"Dependency {ref} not satisfied ({dependency.status.value})",
            )
    return Eligibility(eligible=True)


def calculate_dependency_score(
    task: TaskRecord, all_tasks: Sequence[TaskRecord], max_score: float = 40
) -> ScoreComponent:
    if not task.dependencies:
        return ScoreComponent(score=max_score, reasons=["No dependencies (unblocked)"])

    unsatisfied = _unsatisfied_dependencies(task, _index_tasks(all_tasks))
    count = len(task.dependencies)
    if not unsatisfied:
        return ScoreComponent(score=max_score, reasons=[f"All {count} dependencies satisfied"])
    return ScoreComponent(score=0, reasons=[f"{len(unsatisfied)}/{count} dependencies not satisfied"])


def calculate_priority_score(task: TaskRecord, max_score: float = 30) -> ScoreComponent:
    """Lower ordinals first: loses a tenth of ``max_score`` per ordinal step."""
    steps_left = PRIORITY_DECAY_STEPS - task.ordinal_number
    score = max(0.0, max_score * steps_left / PRIORITY_DECAY_STEPS)
    return ScoreComponent(
        score=score,
        reasons=[f"Agent #{task.ordinal_number} priority: {score:g}/{max_score:g}"],
    )


def calculate_workload_score(task: TaskRecord, max_score: float = 30) -> ScoreComponent:
    """Fewer touched files first: loses a sixth of ``max_score`` per file."""
    file_count = len(task.files_touched)
    score = max(0.0, max_score * (WORKLOAD_DECAY_STEPS - file_count) / WORKLOAD_DECAY_STEPS)
    return ScoreComponent(
        score=score,
        reasons=[f"{file_count} files to modify: {score:g}/{max_score:g}"],
    )


def _plan_bias_lookup(biases: ScoringBiases, task: TaskRecord) -> Optional[float]:
    for key in (task.plan_folder, task.plan_id, str(task.plan_number)):
        if key in biases.plans:
            return biases.plans[key]
    return None


def _bias_contributions(
    biases: ScoringBiases, task: TaskRecord, label: str
) -> List[Tuple[float, str]]:
    contributions = []
    plan_bias = _plan_bias_lookup(biases, task)
    if plan_bias:
        contributions.append((plan_bias, f"{label} plan bias"))
    persona_bias = biases.personas.get(task.persona)
    if persona_bias:
        contributions.append((persona_bias, f"{label} persona bias ({task.persona})"))
    status_bias = biases.statuses.get(task.status.value)
    if status_bias:
        contributions.append((status_bias, f"{label} status bias ({task.status.value})"))
    return contributions


def _override_contributions(
    override: Optional[ScoringOverride], task: TaskRecord, label: str
) -> List[Tuple[float, str]]:
    if override is None:
        return []
    contributions = []
    if override.bias:
        contributions.append((override.bias, f"{label} bias"))
    if override.biases is not None:
        contributions.extend(_bias_contributions(override.biases, task, label))
    return contributions


def calculate_bias_score(task: TaskRecord, biases: ScoringBiases) -> ScoreComponent:
    """Sum of config, plan-level and agent-level bias contributions."""
    contributions = _bias_contributions(biases, task, "Config")
    if task.plan_signal_bias:
        contributions.append((task.plan_signal_bias, "Plan priority/severity"))
    contributions.extend(_override_contributions(task.plan_scoring, task, "Plan"))
    contributions.extend(_override_contributions(task.scoring, task, "Agent"))

    score = sum(value for value, _ in contributions)
    reasons = [f"{label}: {_format_bias(value)}" for value, label in contributions]
    return ScoreComponent(score=score, reasons=reasons)


def effective_weights(task: TaskRecord, weights: ScoringWeights) -> ScoringWeights:
    plan_weights = task.plan_scoring.weights if task.plan_scoring else None
    agent_weights = task.scoring.weights if task.scoring else None
    return merge_weights(weights, plan_weights, agent_weights)


def score_task(
    task: TaskRecord,
    all_tasks: Sequence[TaskRecord],
    weights: ScoringWeights,
    biases: ScoringBiases,
) -> Optional[ScoreBreakdown]:
    """Score one task, or ``None`` if it is not eligible."""
    if not is_task_eligible(task, all_tasks).eligible:
        return None

    task_weights = effective_weights(task, weights)
    dependency = calculate_dependency_score(task, all_tasks, task_weights.dependency)
    priority = calculate_priority_score(task, task_weights.priority)
    workload = calculate_workload_score(task, task_weights.workload)
    bias = calculate_bias_score(task, biases)

    total = max(0.0, dependency.score + priority.score + workload.score + bias.score)
    return ScoreBreakdown(
        task_id=task.task_id,
        plan_id=task.plan_id,
        plan_folder=task.plan_folder,
        plan_number=task.plan_number,
        agent_number=task.agent_number,
        ordinal_number=task.ordinal_number,
        title=task.title or f"Agent {task.agent_number}",
        total_score=total,
        dependency_score=dependency.score,
        priority_score=priority.score,
        workload_score=workload.score,
        bias_score=bias.score,
        max_score=task_weights.total,
        reasons=[*dependency.reasons, *priority.reasons, *workload.reasons, *bias.reasons],
    )


def selection_key(breakdown: ScoreBreakdown) -> tuple:
    return (
        -breakdown.total_score,
        breakdown.plan_number,
        -breakdown.priority_score,
        breakdown.ordinal_number,
        breakdown.task_id,
    )


def rank_tasks(candidates: Iterable[ScoreBreakdown]) -> List[ScoreBreakdown]:
    return sorted(candidates, key=selection_key)


def select_next_task(
    candidates: Iterable[ScoreBreakdown], plan_id: Optional[str] = None
) -> Optional[ScoreBreakdown]:
    """Highest total wins; ties go to the lower plan number, then the higher
    priority score, then the lower ordinal."""
    pool = list(candidates)
    if plan_id is not None:
        pool = [
            candidate
            for candidate in pool
            if plan_matches(candidate.plan_number, candidate.plan_folder, str(plan_id))
        ]
    if not pool:
        return None
    return min(pool, key=selection_key)
