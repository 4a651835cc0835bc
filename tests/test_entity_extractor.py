import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from schemas.graph import EntityType, RelationType
from services.graph.extractor import EntityExtractor
from plan_fixtures import write_plan


def _edges(result):
    by_local = {entity.local_id: entity.canonical_id for entity in result.entities}
    return {
        (by_local[rel.source_local_id], rel.relation_type, by_local[rel.target_local_id])
        for rel in result.relationships
    }


def test_extract_plan_produces_local_batch(tmp_path):
    plan_dir = write_plan(
        tmp_path,
        "0001-graph",
        frontmatter={"title": "Graph", "status": "active", "severity": "critical", "tags": ["infra"]},
        body="# Graph\n\n## Feature 1: Storage layer\n",
        agents={
            "000_store.agent.md": {
                "status": "WIP",
                "persona": "coder",
                "files": ["./src/store.py", "src/store.py"],
                "tags": ["db"],
            },
            "001_api.agent.md": {
                "status": "GAP",
                "dependencies": ["000", "0002#001"],
                "blocks": ["002"],
            },
        },
    )

    result = EntityExtractor().extract_plan(plan_dir)

    assert [entity.local_id for entity in result.entities] == list(range(1, len(result.entities) + 1))
    plan = result.entities[0]
    assert (plan.local_id, plan.type, plan.canonical_id) == (1, EntityType.PLAN, "plan:0001")
    assert plan.metadata["severity"] == "critical"

    agent = next(e for e in result.entities if e.canonical_id == "agent:0001#000")
    assert agent.metadata["status"] == "WIP"
    assert agent.metadata["persona"] == "coder"

    edges = _edges(result)
    assert ("plan:0001", RelationType.CONTAINS, "feature:0001#1") in edges
    assert ("plan:0001", RelationType.CONTAINS, "agent:0001#000") in edges
    assert ("agent:0001#001", RelationType.DEPENDS_ON, "agent:0001#000") in edges
    assert ("agent:0001#001", RelationType.DEPENDS_ON, "agent:0002#001") in edges
    assert ("agent:0001#001", RelationType.BLOCKS, "agent:0001#002") in edges
    assert ("agent:0001#000", RelationType.MODIFIES, "file:src/store.py") in edges
    assert ("plan:0001", RelationType.TAGGED_WITH, "tag:infra") in edges
    assert ("agent:0001#000", RelationType.TAGGED_WITH, "tag:db") in edges
    assert len(edges) == len(result.relationships)

    placeholder = next(e for e in result.entities if e.canonical_id == "agent:0002#001")
    assert placeholder.reference_only
    assert not agent.reference_only


def test_extract_plan_numbers_from_one_on_every_call(tmp_path):
    first = write_plan(tmp_path, "0001-a", agents={"000_a.agent.md": {"status": "GAP"}})
    second = write_plan(tmp_path, "0002-b", agents={"000_b.agent.md": {"status": "GAP"}})
    extractor = EntityExtractor()

    a = extractor.extract_plan(first)
    b = extractor.extract_plan(second)

    assert [(e.local_id, e.canonical_id) for e in a.entities] == [(1, "plan:0001"), (2, "agent:0001#000")]
    assert [(e.local_id, e.canonical_id) for e in b.entities] == [(1, "plan:0002"), (2, "agent:0002#000")]


def test_self_dependency_is_dropped(tmp_path):
    plan_dir = write_plan(tmp_path, "0001-self", agents={"000_a.agent.md": {"dependencies": ["000"]}})

    result = EntityExtractor().extract_plan(plan_dir)

    assert all(rel.relation_type is not RelationType.DEPENDS_ON for rel in result.relationships)


def test_malformed_agent_does_not_abort_extraction(tmp_path):
    plan_dir = write_plan(
        tmp_path,
        "0001-partial",
        agents={
            "000_bad.agent.md": "---\nstatus: [unclosed\n---\n",
            "001_good.agent.md": {"status": "GAP"},
        },
    )

    result = EntityExtractor().extract_plan(plan_dir)

    assert [e.canonical_id for e in result.entities] == ["plan:0001", "agent:0001#001"]
    assert len(result.warnings) == 1


def test_folder_without_plan_number_yields_only_a_warning(tmp_path):
    plan_dir = tmp_path / "scratch"
    plan_dir.mkdir()

    result = EntityExtractor().extract_plan(plan_dir)

    assert result.entities == []
    assert result.relationships == []
    assert result.warnings


def test_undecodable_agent_is_skipped_and_rest_extracted(tmp_path):
    plan_dir = write_plan(tmp_path, "0002-beta", agents={"000_ok.agent.md": {"status": "GAP"}})
    (plan_dir / "agents" / "001_bad.agent.md").write_bytes(b"---\nstatus: GAP\n---\n\xff\xfe")

    result = EntityExtractor().extract_plan(plan_dir)

    assert [e.canonical_id for e in result.entities] == ["plan:0002", "agent:0002#000"]
    assert len(result.warnings) == 1
