from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import yaml

from mission_control.domain.models import Activity, Task
from mission_control.storage.bootstrap import ensure_state_root
from mission_control.storage.container import Container


def test_bootstrap_creates_state_files_and_default_config(tmp_path: Path) -> None:
    root = ensure_state_root(tmp_path)

    assert root == tmp_path / ".mission_control"
    for name in ("tasks.yaml", "agents.yaml", "run_requests.yaml", "activities.jsonl", "config.yaml"):
        assert (root / name).exists()
    config = yaml.safe_load((root / "config.yaml").read_text(encoding="utf-8"))
    assert config["schema_version"] == 1
    assert config["dispatcher"]["batch_size"] == 50
    assert config["coordinator"]["max_creates"] == 3


def test_bootstrap_keeps_user_config_sections(tmp_path: Path) -> None:
    root = tmp_path / ".mission_control"
    root.mkdir()
    (root / "config.yaml").write_text("dispatcher:\n  max_workers: 9\n", encoding="utf-8")

    ensure_state_root(tmp_path)

    config = yaml.safe_load((root / "config.yaml").read_text(encoding="utf-8"))
    assert config["dispatcher"] == {"max_workers": 9}
    assert "executor" in config


def test_collection_upsert_get_and_workspace_filter(tmp_path: Path) -> None:
    container = Container(tmp_path)
    first = container.tasks.upsert(Task(workspace_id="ws-a", title="One"))
    container.tasks.upsert(Task(workspace_id="ws-b", title="Two"))

    assert container.tasks.get(first.id).title == "One"
    assert [task.title for task in container.tasks.list("ws-a")] == ["One"]
    assert len(container.tasks.list()) == 2

    raw = yaml.safe_load((tmp_path / ".mission_control" / "tasks.yaml").read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert {item["title"] for item in raw["tasks"]} == {"One", "Two"}


def test_mutate_returning_none_leaves_record_untouched(tmp_path: Path) -> None:
    container = Container(tmp_path)
    task = container.tasks.upsert(Task(workspace_id="ws-a", title="Keep"))

    result = container.tasks.mutate(task.id, lambda current: None)

    assert result is not None and result.title == "Keep"
    assert container.tasks.mutate("task-missing", lambda current: current) is None


def test_delete_where_and_update_where(tmp_path: Path) -> None:
    container = Container(tmp_path)
    for idx in range(3):
        container.tasks.upsert(Task(workspace_id="ws-a" if idx < 2 else "ws-b", title=f"T{idx}"))

    def _rename(task: Task) -> Task:
        task.title = task.title.lower()
        return task

    assert container.tasks.update_where(lambda task: task.workspace_id == "ws-a", _rename) == 2
    assert sorted(task.title for task in container.tasks.list("ws-a")) == ["t0", "t1"]
    assert container.tasks.delete_where(lambda task: task.workspace_id == "ws-a") == 2
    assert [task.title for task in container.tasks.list()] == ["T2"]


def test_concurrent_mutations_do_not_lose_updates(tmp_path: Path) -> None:
    container = Container(tmp_path)
    task = container.tasks.upsert(Task(workspace_id="ws-a", title="Counter", tags=[]))

    def _tag(idx: int) -> None:
        def _apply(current: Task) -> Task:
            current.tags.append(f"t{idx}")
            return current

        container.tasks.mutate(task.id, _apply)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_tag, range(20)))

    assert len(container.tasks.get(task.id).tags) == 20


def test_activity_log_tail_filters_by_workspace_and_since(tmp_path: Path) -> None:
    container = Container(tmp_path)
    for idx in range(5):
        container.activities.append(
            Activity(workspace_id="ws-a", type="comment", message=f"a{idx}", created_at=f"2025-01-01T00:0{idx}:00+00:00")
        )
    container.activities.append(Activity(workspace_id="ws-b", type="comment", message="b0"))

    tail = container.activities.list_recent("ws-a", limit=2)
    assert [a.message for a in tail] == ["a3", "a4"]

    since = container.activities.list_recent("ws-a", limit=10, since="2025-01-01T00:02:00+00:00")
    assert [a.message for a in since] == ["a2", "a3", "a4"]


def test_activity_log_skips_corrupt_lines(tmp_path: Path) -> None:
    container = Container(tmp_path)
    container.activities.append(Activity(workspace_id="ws-a", type="comment", message="ok"))
    with (tmp_path / ".mission_control" / "activities.jsonl").open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")

    assert [a.message for a in container.activities.list_recent("ws-a")] == ["ok"]


def test_assign_workspace_backfills_only_orphans(tmp_path: Path) -> None:
    container = Container(tmp_path)
    container.activities.append(Activity(workspace_id="", type="comment", message="old"))
    container.activities.append(Activity(workspace_id="ws-x", type="comment", message="new"))

    assert container.activities.assign_workspace("ws-default") == 1
    assert [a.message for a in container.activities.list_recent("ws-default")] == ["old"]
    assert container.activities.assign_workspace("ws-default") == 0


def test_activity_type_filter_reaches_past_newer_entries(tmp_path: Path) -> None:
    container = Container(tmp_path)
    container.activities.append(Activity(workspace_id="ws-a", type="coordination", message="plan"))
    for idx in range(60):
        container.activities.append(Activity(workspace_id="ws-a", type="heartbeat", message=f"beat {idx}"))

    found = container.activities.list_recent("ws-a", limit=5, activity_type="coordination")

    assert [a.message for a in found] == ["plan"]


def test_recent_by_type_finds_entries_buried_under_heartbeats(board, workspace) -> None:
    board.activity.record(workspace.id, "coordination", "Jarvis coordination: no actions")
    for idx in range(30):
        board.activity.record(workspace.id, "heartbeat", f"Friday heartbeat {idx}")

    [entry] = board.activity.recent(workspace.id, limit=1, activity_type="coordination")

    assert entry.message == "Jarvis coordination: no actions"
