import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.planning import PlanningConfig
from config.scoring import ScoringBiases, ScoringConfig, ScoringPreset
from infrastructure.utils.exceptions import PlanNotFoundError, TaskNotFoundError
from services.planning.task_service import TaskScoringService
from plan_fixtures import write_plan


@pytest.fixture
def plans(tmp_path):
    write_plan(
        tmp_path,
        "0001-core",
        agents={
            "000_schema.agent.md": {"status": "PASS"},
            "001_api.agent.md": {"status": "GAP", "dependencies": ["000"], "files": ["api.py"]},
            "002_ui.agent.md": {"status": "GAP", "dependencies": ["001"]},
        },
    )
    write_plan(
        tmp_path,
        "0002-extras",
        frontmatter={"priority": "critical"},
        agents={
            "000_docs.agent.md": {"status": "GAP", "persona": "reviewer", "dependencies": ["0001#002"]},
            "001_cli.agent.md": {"status": "GAP", "files": ["a.py", "b.py", "c.py"]},
        },
    )
    return tmp_path


def test_score_tasks_returns_only_eligible_tasks_best_first(plans):
    service = TaskScoringService(PlanningConfig(plans_path=plans))

    result = service.score_tasks()

    assert [task.task_id for task in result.tasks] == ["0002-extras#001", "0001-core#001"]
    cli, api = result.tasks
    assert cli.bias_score == 20
    assert cli.total_score == 40 + 27 + 15 + 20
    assert api.total_score == 40 + 27 + 25
    assert result.warnings == []


def test_next_task_counts_other_candidates(plans):
    service = TaskScoringService(PlanningConfig(plans_path=plans))

    result = service.next_task()

    assert result.task.task_id == "0002-extras#001"
    assert result.other_available == 1
    assert result.total_tasks == 5
    assert result.completed_tasks == 1


def test_next_task_limited_to_one_plan(plans):
    service = TaskScoringService(PlanningConfig(plans_path=plans))

    result = service.next_task(plan_id="1")

    assert result.task.task_id == "0001-core#001"
    assert result.other_available == 0
    assert result.total_tasks == 3


def test_no_eligible_task_is_not_an_error(tmp_path):
    write_plan(tmp_path, "0001-done", agents={"000_a.agent.md": {"status": "PASS"}})
    service = TaskScoringService(PlanningConfig(plans_path=tmp_path))

    result = service.next_task()

    assert result.task is None
    assert result.all_completed


def test_unknown_plan_and_task_raise_not_found(plans):
    service = TaskScoringService(PlanningConfig(plans_path=plans))

    with pytest.raises(PlanNotFoundError):
        service.next_task(plan_id="0042")
    with pytest.raises(PlanNotFoundError):
        service.score_tasks(plan_id="missing")
    with pytest.raises(TaskNotFoundError):
        service.score_task_by_id("0001-core#009")
    with pytest.raises(TaskNotFoundError):
        service.score_task_by_id("not-a-task")


def test_score_task_by_id(plans):
    service = TaskScoringService(PlanningConfig(plans_path=plans))

    assert service.score_task_by_id("0001-core#001").dependency_score == 40
    assert service.score_task_by_id("0001#1").task_id == "0001-core#001"
    assert service.score_task_by_id("0001-core#002") is None


def test_config_biases_and_preset_apply(plans):
    config = PlanningConfig(
        plans_path=plans,
        scoring=ScoringConfig(
            preset=ScoringPreset.CODE_THEN_REVIEW,
            biases=ScoringBiases(plans={"0001-core": 50}),
        ),
    )

    result = TaskScoringService(config).score_tasks()

    assert result.tasks[0].task_id == "0001-core#001"
    assert result.tasks[0].bias_score == 50 + 10


def test_malformed_override_is_ignored_with_warning(tmp_path, caplog):
    write_plan(
        tmp_path,
        "0001-odd",
        frontmatter={"scoring": {"bias": "very"}},
        agents={"000_a.agent.md": {"status": "GAP"}},
    )
    config = PlanningConfig(plans_path=tmp_path)

    with caplog.at_level(logging.WARNING):
        result = TaskScoringService(config).score_tasks()
    assert result.tasks[0].bias_score == 0
    assert any("malformed scoring override" in warning for warning in result.warnings)
    assert "malformed scoring override" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING):
        quiet = TaskScoringService(config, suppress_warnings=True).score_tasks()
    assert quiet.warnings == result.warnings
    assert "malformed scoring override" not in caplog.text


def test_undecodable_agent_does_not_abort_other_plans(plans):
    (plans / "0002-extras" / "agents" / "003_bad.agent.md").write_bytes(b"---\nstatus: GAP\n---\n\xff\xfe")
    service = TaskScoringService(PlanningConfig(plans_path=plans), suppress_warnings=True)

    result = service.next_task()

    assert result.task.task_id == "0002-extras#001"
    assert result.total_tasks == 5
    assert any("003_bad.agent.md" in warning for warning in result.warnings)
