import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.planning import PlanningConfig
from infrastructure.utils.exceptions import GraphStoreError
from schemas.graph import EntityType, RelationType
from services.graph.extractor import EntityExtractor
from services.graph.reindex import LocalIdMap, reindex
from plan_fixtures import open_store, write_plan


@pytest.fixture
def store():
    graph = open_store()
    yield graph
    graph.db.close()


def _snapshot(store):
    entities = {
        entity.id: (entity.canonical_id, entity.name, tuple(sorted(entity.metadata.items(), key=str)))
        for entity_type in EntityType
        for entity in store.find_entities(entity_type)
    }
    relationships = sorted(
        (entities[rel.source_id][0], rel.relation_type.value, entities[rel.target_id][0], rel.confidence)
        for rel in store.list_relationships()
    )
    return sorted(entities.values()), relationships


def _contains_pairs(store):
    pairs = set()
    for rel in store.list_relationships(RelationType.CONTAINS):
        source = store.get_entity_by_id(rel.source_id)
        target = store.get_entity_by_id(rel.target_id)
        pairs.add((source.canonical_id, target.canonical_id))
    return pairs


def test_local_ids_are_remapped_per_plan(tmp_path, store):
    write_plan(tmp_path, "0001-alpha", agents={"000_a.agent.md": {"status": "GAP"}})
    write_plan(tmp_path, "0002-beta", agents={"000_b.agent.md": {"status": "GAP"}})

    result = reindex(PlanningConfig(plans_path=tmp_path), store)

    assert result.plans_processed == 2
    assert _contains_pairs(store) == {
        ("plan:0001", "agent:0001#000"),
        ("plan:0002", "agent:0002#000"),
    }


def test_reindex_twice_leaves_graph_unchanged(tmp_path, store):
    write_plan(
        tmp_path,
        "0001-alpha",
        body="# Alpha\n\n## Feature 1: Storage\n",
        agents={
            "000_a.agent.md": {"status": "PASS", "files": ["src/a.py"]},
            "001_b.agent.md": {"status": "GAP", "dependencies": ["000"], "tags": ["api"]},
        },
    )
    config = PlanningConfig(plans_path=tmp_path)

    first = reindex(config, store)
    before = _snapshot(store)
    second = reindex(config, store)
    after = _snapshot(store)

    assert before == after
    assert first.entities_upserted == second.entities_upserted
    assert first.relationships_upserted == second.relationships_upserted
    assert store.get_stats().last_indexed is not None


def test_reindex_filters_to_one_plan(tmp_path, store):
    write_plan(tmp_path, "0001-alpha", agents={"000_a.agent.md": {"status": "GAP"}})
    write_plan(tmp_path, "0002-beta", agents={"000_b.agent.md": {"status": "GAP"}})

    result = reindex(PlanningConfig(plans_path=tmp_path), store, plan_id="2")

    assert result.plans_processed == 1
    assert store.get_entity("plan:0001") is None
    assert store.get_entity("plan:0002") is not None


def test_unknown_plan_filter_is_a_warning(tmp_path, store):
    write_plan(tmp_path, "0001-alpha")

    result = reindex(PlanningConfig(plans_path=tmp_path), store, plan_id="42")

    assert result.plans_processed == 0
    assert result.warnings == ["No plan directory matches '42'"]


class _FailingExtractor(EntityExtractor):
    def __init__(self, failing_folder):
        super().__init__()
        self.failing_folder = failing_folder
        self.seen = []

    def extract_plan(self, plan_dir):
        self.seen.append(Path(plan_dir).name)
        result = super().extract_plan(plan_dir)
        if Path(plan_dir).name == self.failing_folder:
            # Dangling local id makes the batch fail after its entities are written.
            result.relationships[0].target_local_id = 999
        return result


def test_failed_plan_is_rolled_back_and_others_continue(tmp_path, store):
    write_plan(tmp_path, "0010-late", agents={"000_c.agent.md": {"status": "GAP"}})
    write_plan(tmp_path, "0002-broken", agents={"000_b.agent.md": {"status": "GAP"}})
    write_plan(tmp_path, "0001-early", agents={"000_a.agent.md": {"status": "GAP"}})
    extractor = _FailingExtractor("0002-broken")

    result = reindex(PlanningConfig(plans_path=tmp_path), store, extractor=extractor)

    assert extractor.seen == ["0001-early", "0002-broken", "0010-late"]
    assert result.plans_processed == 2
    assert len(result.warnings) == 1
    assert "0002-broken" in result.warnings[0]
    assert store.get_entity("plan:0002") is None
    assert store.get_entity("plan:0001") is not None
    assert store.get_entity("plan:0010") is not None


def test_cross_plan_reference_does_not_clobber_existing_agent(tmp_path, store):
    write_plan(
        tmp_path,
        "0001-base",
        agents={"000_core.agent.md": {"status": "WIP", "title": "Core"}},
    )
    write_plan(
        tmp_path,
        "0002-follow",
        agents={"000_next.agent.md": {"status": "GAP", "dependencies": ["0001#000"]}},
    )

    reindex(PlanningConfig(plans_path=tmp_path), store)

    core = store.get_entity("agent:0001#000")
    assert core.name == "Core"
    assert core.metadata["status"] == "WIP"
    follow = store.get_entity("agent:0002#000")
    assert [n.canonical_id for n in store.get_neighbors(follow.id, RelationType.DEPENDS_ON)] == [
        "agent:0001#000"
    ]


def test_local_id_map_rejects_unknown_and_conflicting_ids():
    id_map = LocalIdMap()
    id_map.record(1, 10)
    id_map.record(1, 10)

    assert id_map.resolve(1) == 10
    with pytest.raises(GraphStoreError):
        id_map.resolve(2)
    with pytest.raises(GraphStoreError):
        id_map.record(1, 11)


def test_reindex_counts_documents_whose_content_changed(tmp_path, store):
    plan_dir = write_plan(
        tmp_path,
        "0001-alpha",
        agents={"000_a.agent.md": {"status": "GAP"}, "001_b.agent.md": {"status": "GAP"}},
    )
    config = PlanningConfig(plans_path=tmp_path)

    assert reindex(config, store).documents_changed == 3
    assert reindex(config, store).documents_changed == 0

    write_plan(tmp_path, "0001-alpha", agents={"001_b.agent.md": {"status": "WIP"}})
    again = reindex(config, store)

    assert again.documents_changed == 1
    assert store.get_entity("agent:0001#001").metadata["status"] == "WIP"
    assert (plan_dir / "agents" / "000_a.agent.md").exists()
