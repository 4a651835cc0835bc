"""
Exception hierarchy for the planning core.

Per-unit problems during extraction or override parsing are reported as
warning strings, not exceptions. The classes below cover the failures that
callers must be able to tell apart.
"""

from __future__ import annotations

from typing import Iterable


class PlanningCoreError(Exception):
    """Base exception for all planning core errors."""

    pass


class ConfigurationError(PlanningCoreError):
    """Raised when configuration is invalid or missing."""

    pass


class DocumentParseError(PlanningCoreError):
    """Raised when a plan or agent document cannot be decoded.

    The document reader catches this per document and turns it into a
    warning.
    """

    pass


class GraphStoreError(PlanningCoreError):
    """Raised for graph storage failures."""

    pass


class EntityReferenceError(GraphStoreError):
    """A relationship referenced entity ids that are not in the store.

    Attributes:
        missing_ids: Entity ids that could not be found.
    """

    def __init__(self, missing_ids: Iterable[int], relation_type: str | None = None) -> None:
        self.missing_ids = sorted(set(missing_ids))
        self.relation_type = relation_type
        label = f" for {relation_type}" if relation_type else ""
        super().__init__(
            f"Relationship{label} references unknown entity ids: {self.missing_ids}"
        )


class PlanNotFoundError(PlanningCoreError):
    """Raised when a plan id does not match any plan directory."""

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Plan not found: {plan_id}")


class TaskNotFoundError(PlanningCoreError):
    """Raised when a task id does not match any agent in its plan."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")
