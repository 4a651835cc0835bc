"""Scoring weights, biases and presets for task prioritization.

Weights cap each scoring term; biases add to or subtract from the total.
Configuration is layered: built-in defaults, then the selected preset, then
explicit values. Plan and agent frontmatter can add further layers on top
(see ``services.planning.scoring``).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from infrastructure.utils.exceptions import ConfigurationError


class ScoringPreset(StrEnum):
    """Named bundles of weights and biases."""

    DEFAULT = "default"
    QUICK_WINS = "quick-wins"
    DEPENDENCY_CHAIN = "dependency-chain"
    NEWEST_FIRST = "newest-first"
    CODE_THEN_REVIEW = "code-then-review"


class ScoringWeights(BaseModel):
    """Maximum contribution of each scoring term."""

    model_config = ConfigDict(frozen=True)

    dependency: float = Field(40, ge=0)
    priority: float = Field(30, ge=0)
    workload: float = Field(30, ge=0)

    @property
    def total(self) -> float:
        return self.dependency + self.priority + self.workload


class WeightOverrides(BaseModel):
    """Partial weights; unset keys fall through to the layer below."""

    model_config = ConfigDict(extra="forbid")

    dependency: Optional[float] = Field(None, ge=0)
    priority: Optional[float] = Field(None, ge=0)
    workload: Optional[float] = Field(None, ge=0)


class ScoringBiases(BaseModel):
    """Additive adjustments keyed by plan, persona or status."""

    model_config = ConfigDict(extra="forbid")

    plans: dict[str, float] = Field(default_factory=dict)
    personas: dict[str, float] = Field(default_factory=dict)
    statuses: dict[str, float] = Field(default_factory=dict)


class ScoringConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    preset: Optional[ScoringPreset] = None
    weights: WeightOverrides = Field(default_factory=WeightOverrides)
    biases: ScoringBiases = Field(default_factory=ScoringBiases)


class PresetDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    weights: ScoringWeights
    biases: ScoringBiases = Field(default_factory=ScoringBiases)


DEFAULT_SCORING_WEIGHTS = ScoringWeights()

SCORING_PRESETS: dict[ScoringPreset, PresetDefinition] = {
    ScoringPreset.DEFAULT: PresetDefinition(weights=DEFAULT_SCORING_WEIGHTS),
    ScoringPreset.QUICK_WINS: PresetDefinition(
        weights=ScoringWeights(dependency=20, priority=20, workload=60),
    ),
    ScoringPreset.DEPENDENCY_CHAIN: PresetDefinition(
        weights=ScoringWeights(dependency=60, priority=20, workload=20),
        biases=ScoringBiases(statuses={"BLOCKED": 20}),
    ),
    ScoringPreset.NEWEST_FIRST: PresetDefinition(
        weights=ScoringWeights(dependency=30, priority=40, workload=30),
    ),
    ScoringPreset.CODE_THEN_REVIEW: PresetDefinition(
        weights=DEFAULT_SCORING_WEIGHTS,
        biases=ScoringBiases(personas={"coder": 10, "reviewer": -10}),
    ),
}


def _preset_for(config: ScoringConfig) -> PresetDefinition:
    return SCORING_PRESETS[config.preset or ScoringPreset.DEFAULT]


def merge_weights(
    base: ScoringWeights,
    *layers: ScoringWeights | WeightOverrides | None,
) -> ScoringWeights:
    """Apply weight layers in order; a later layer wins for every key it sets."""
    merged = base.model_dump()
    for layer in layers:
        if layer is None:
            continue
        merged.update(layer.model_dump(exclude_none=True))
    return ScoringWeights(**merged)


def merge_biases(*layers: ScoringBiases | None) -> ScoringBiases:
    """Merge bias maps per kind; a later layer replaces a key set earlier."""
    plans: dict[str, float] = {}
    personas: dict[str, float] = {}
    statuses: dict[str, float] = {}
    for layer in layers:
        if layer is None:
            continue
        plans.update(layer.plans)
        personas.update(layer.personas)
        statuses.update(layer.statuses)
    return ScoringBiases(plans=plans, personas=personas, statuses=statuses)


def get_scoring_weights(config: ScoringConfig) -> ScoringWeights:
    return merge_weights(DEFAULT_SCORING_WEIGHTS, _preset_for(config).weights, config.weights)


def get_scoring_biases(config: ScoringConfig) -> ScoringBiases:
    return merge_biases(_preset_for(config).biases, config.biases)


def load_scoring_config(raw: Mapping[str, Any] | None) -> ScoringConfig:
    """Validate a raw ``scoring`` mapping (e.g. from a config file)."""
    if raw is None:
        return ScoringConfig()
    try:
        return ScoringConfig.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid scoring configuration: {exc}") from exc
