import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.planning import ConflictThresholds
from config.scoring import (
    ScoringBiases,
    ScoringConfig,
    ScoringPreset,
    ScoringWeights,
    WeightOverrides,
    get_scoring_biases,
    get_scoring_weights,
    load_scoring_config,
    merge_biases,
    merge_weights,
)
from infrastructure.utils.exceptions import ConfigurationError


def test_default_weights():
    weights = get_scoring_weights(ScoringConfig())

    assert (weights.dependency, weights.priority, weights.workload) == (40, 30, 30)
    assert weights.total == 100


def test_preset_then_explicit_weights():
    config = ScoringConfig(preset=ScoringPreset.QUICK_WINS, weights=WeightOverrides(priority=25))

    weights = get_scoring_weights(config)

    assert (weights.dependency, weights.priority, weights.workload) == (20, 25, 60)


def test_preset_biases_merge_with_config_biases():
    config = ScoringConfig(
        preset=ScoringPreset.CODE_THEN_REVIEW,
        biases=ScoringBiases(personas={"reviewer": 5}, plans={"0001-auth": 3}),
    )

    biases = get_scoring_biases(config)

    assert biases.personas == {"coder": 10, "reviewer": 5}
    assert biases.plans == {"0001-auth": 3}


def test_dependency_chain_preset_biases_blocked_work():
    biases = get_scoring_biases(ScoringConfig(preset=ScoringPreset.DEPENDENCY_CHAIN))

    assert biases.statuses == {"BLOCKED": 20}


def test_merge_weights_later_layers_win_per_key():
    merged = merge_weights(
        ScoringWeights(),
        WeightOverrides(priority=10),
        None,
        WeightOverrides(workload=5),
        WeightOverrides(priority=12),
    )

    assert (merged.dependency, merged.priority, merged.workload) == (40, 12, 5)


def test_merge_biases_replaces_keys_within_a_kind():
    merged = merge_biases(
        ScoringBiases(statuses={"GAP": 1}, personas={"coder": 2}),
        ScoringBiases(statuses={"GAP": 4}),
    )

    assert merged.statuses == {"GAP": 4}
    assert merged.personas == {"coder": 2}


def test_load_scoring_config_validates_input():
    config = load_scoring_config({"preset": "newest-first", "biases": {"plans": {"0002": 8}}})

    assert config.preset is ScoringPreset.NEWEST_FIRST
    assert get_scoring_weights(config).priority == 40

    with pytest.raises(ConfigurationError):
        load_scoring_config({"weights": {"priority": -1}})
    with pytest.raises(ConfigurationError):
        load_scoring_config({"preset": "fastest"})


def test_stale_error_window_must_not_precede_warning_window():
    with pytest.raises(ValueError):
        ConflictThresholds(stale_wip_days=10, stale_wip_error_days=5)
