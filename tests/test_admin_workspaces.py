from __future__ import annotations

import pytest

from mission_control.domain.models import Activity, Agent, Task
from mission_control.errors import NotFoundError, ValidationError, WrongTenantError


def test_workspace_create_slugifies_and_rejects_duplicates(board) -> None:
    ws = board.workspaces.create("Marketing Team!")

    assert ws.slug == "marketing-team"
    assert board.workspaces.resolve("marketing-team").id == ws.id
    assert board.workspaces.resolve(ws.id).slug == "marketing-team"
    with pytest.raises(ValidationError, match="Workspace slug already exists"):
        board.workspaces.create("Other name", slug="Marketing Team")
    with pytest.raises(ValidationError):
        board.workspaces.create("   ")
    with pytest.raises(NotFoundError, match="Workspace not found"):
        board.workspaces.resolve("nope")


def test_ensure_default_is_stable(board) -> None:
    first = board.workspaces.ensure_default()
    second = board.workspaces.ensure_default()

    assert first.id == second.id
    assert first.slug == "default"
    assert len(board.workspaces.list()) == 1


def test_agent_upsert_updates_by_name_and_validates(board, workspace) -> None:
    created = board.agents.upsert(workspace.id, "Friday", role="Backend", tags=["api"])
    updated = board.agents.upsert(workspace.id, "friday", status="active")

    assert updated.id == created.id
    assert updated.role == "Backend"
    assert updated.status == "active"
    assert updated.level == "SPC"
    assert len(board.agents.list(workspace.id)) == 1
    with pytest.raises(ValidationError):
        board.agents.upsert(workspace.id, "Bad", level="BOSS")
    with pytest.raises(ValidationError):
        board.agents.upsert(workspace.id, " ")

    shuri = board.agents.upsert(workspace.id, "Shuri")
    with pytest.raises(ValidationError, match="Agent name already exists"):
        board.agents.upsert(workspace.id, "Friday", agent_id=shuri.id)


def test_same_agent_name_is_allowed_in_another_workspace(board, workspace) -> None:
    other = board.workspaces.create("Other")
    mine = board.agents.upsert(workspace.id, "Friday")
    theirs = board.agents.upsert(other.id, "Friday")

    assert mine.id != theirs.id
    assert board.agents.resolve(other.id, "friday").id == theirs.id
    with pytest.raises(WrongTenantError):
        board.agents.resolve(workspace.id, theirs.id)


def test_pick_default_assignee_prefers_active_lead(board, workspace) -> None:
    assert board.agents.pick_default_assignee(workspace.id) is None
    first = board.agents.upsert(workspace.id, "First", status="active")
    assert board.agents.pick_default_assignee(workspace.id).id == first.id
    lead = board.agents.upsert(workspace.id, "Lead", level="LEAD", status="active")
    assert board.agents.pick_default_assignee(workspace.id).id == lead.id


def test_migrate_adopts_records_without_workspace(board) -> None:
    board.container.agents.upsert(Agent(name="Legacy"))
    board.container.tasks.upsert(Task(title="Legacy task"))
    board.container.activities.append(Activity(type="comment", message="legacy note"))

    result = board.workspaces.migrate_to_workspaces()

    default = board.workspaces.get_by_slug("default")
    assert result["workspace_id"] == default.id
    assert result["migrated"]["agents"] == 1
    assert result["migrated"]["tasks"] == 1
    assert result["migrated"]["activities"] == 1
    assert [t.title for t in board.tasks.list(default.id)] == ["Legacy task"]
    assert board.activity.recent(default.id, activity_type="migration")
    assert board.workspaces.migrate_to_workspaces()["migrated"]["tasks"] == 0


def test_purge_workspace_removes_only_its_records(board, workspace) -> None:
    other = board.workspaces.create("Other")
    agent = board.agents.upsert(workspace.id, "Friday")
    task = board.tasks.create(workspace.id, "Mine")
    board.messages.post(workspace.id, task.id, "@friday hello")
    board.run_requests.enqueue(workspace.id, agent.id)
    kept = board.tasks.create(other.id, "Theirs")

    result = board.admin.purge_workspace(workspace.id)

    assert result["deleted"] == {"messages": 1, "tasks": 1, "notifications": 1, "run_requests": 1, "agents": 1}
    assert board.tasks.list(workspace.id) == []
    assert [t.id for t in board.tasks.list(other.id)] == [kept.id]
    assert board.workspaces.get(workspace.id).id == workspace.id


def test_normalize_assigned_fixes_inbox_tasks_with_assignees(board, workspace) -> None:
    agent = board.agents.upsert(workspace.id, "Friday")
    board.container.tasks.upsert(Task(workspace_id=workspace.id, title="Stale", assignee_ids=[agent.id]))
    board.tasks.create(workspace.id, "Fresh")

    assert board.admin.normalize_assigned(workspace.id) == 1
    statuses = {t.title: t.status for t in board.tasks.list(workspace.id)}
    assert statuses == {"Stale": "assigned", "Fresh": "inbox"}
    assert board.admin.normalize_assigned(workspace.id) == 0
