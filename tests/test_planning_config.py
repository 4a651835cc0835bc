import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import settings
from config.planning import PlanningConfig
from config.scoring import ScoringPreset
from infrastructure.utils.exceptions import ConfigurationError
from schemas.graph import EntityType
from services.graph.graph_store import open_graph_store


def test_from_settings_reads_every_setting(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "PLANS_PATH", str(tmp_path / "plans"))
    monkeypatch.setattr(settings, "DATA_PATH", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "SCORING_PRESET", "quick-wins")
    monkeypatch.setattr(settings, "FEATURE_OVERLAP_THRESHOLD", 0.7)
    monkeypatch.setattr(settings, "FEATURE_SIMILARITY_THRESHOLD", 0.9)
    monkeypatch.setattr(settings, "STALE_WIP_DAYS", 3.0)
    monkeypatch.setattr(settings, "STALE_WIP_ERROR_DAYS", 10.0)

    config = PlanningConfig.from_settings()

    assert config.plans_path == tmp_path / "plans"
    assert config.scoring.preset is ScoringPreset.QUICK_WINS
    assert config.conflicts.overlap_threshold == 0.7
    assert config.conflicts.stale_wip_days == 3.0
    assert config.conflicts.stale_wip_error_days == 10.0
    assert config.similarity_threshold == 0.9
    assert config.graph_database_url() == f"sqlite:///{(tmp_path / 'data' / 'graph.sqlite').as_posix()}"


def test_from_settings_rejects_unknown_preset(monkeypatch):
    monkeypatch.setattr(settings, "SCORING_PRESET", "fastest")

    with pytest.raises(ConfigurationError):
        PlanningConfig.from_settings()


def test_explicit_database_url_wins(tmp_path):
    config = PlanningConfig(plans_path=tmp_path, data_path=tmp_path / "ignored", database_url="sqlite://")

    assert config.graph_database_url() == "sqlite://"


def test_open_graph_store_persists_under_data_path(tmp_path):
    config = PlanningConfig(plans_path=tmp_path, data_path=tmp_path / "data")

    store = open_graph_store(config)
    with store.transaction():
        store.upsert_entity(EntityType.PLAN, "plan:0001", "Plan")
    store.db.close()

    assert (tmp_path / "data" / "graph.sqlite").exists()
    reopened = open_graph_store(config)
    assert reopened.get_entity("plan:0001").name == "Plan"
    reopened.db.close()
