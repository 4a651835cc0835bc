"""
Configuration entry points.

``from config import settings`` gives the environment-driven constants;
``config.scoring`` and ``config.planning`` hold the typed configuration
models consumed by the graph and scoring services.
"""

from . import settings
from .planning import ConflictThresholds, PlanningConfig
from .scoring import ScoringBiases, ScoringConfig, ScoringWeights

__all__ = [
    "settings",
    "ConflictThresholds",
    "PlanningConfig",
    "ScoringBiases",
    "ScoringConfig",
    "ScoringWeights",
]
