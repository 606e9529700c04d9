from __future__ import annotations

from mission_control.domain.models import Actor
from mission_control.events.standup import daily_standup


def test_standup_buckets_by_agent_and_counts_statuses(board, workspace, clock) -> None:
    friday = board.agents.upsert(workspace.id, "Friday")
    shuri = board.agents.upsert(workspace.id, "Shuri")
    task = board.tasks.create(workspace.id, "Fix login", actor=Actor.human("Ana"))
    board.tasks.transition(workspace.id, task.id, "in_progress", Actor.for_agent(friday))
    board.tasks.transition(workspace.id, task.id, "review", Actor.for_agent(friday))
    board.messages.post(workspace.id, task.id, "Looks good", Actor.for_agent(shuri))

    report = daily_standup(board.activity, board.agents.list(workspace.id), workspace.id)

    by_name = {bucket.name: bucket for bucket in report.buckets}
    assert report.buckets[0].name == "Friday"
    assert by_name["Friday"].total == 3
    assert dict(by_name["Friday"].by_status) == {"in_progress": 1, "review": 1}
    assert by_name["Shuri"].by_type["comment"] == 1
    assert by_name["System/Human"].by_type["task_created"] == 1
    assert by_name["Friday"].recent[0] == "Friday moved “Fix login” from in_progress to review"


def test_standup_window_excludes_old_activity(board, workspace, clock) -> None:
    board.tasks.create(workspace.id, "Ancient")
    clock.advance(hours=5)
    board.tasks.create(workspace.id, "Recent")

    report = daily_standup(board.activity, [], workspace.id, hours=2)

    assert report.total == 1
    assert report.buckets[0].recent == ["System created “Recent”"]
    assert daily_standup(board.activity, [], workspace.id, hours=0).hours == 1
    assert daily_standup(board.activity, [], workspace.id, hours=1000).hours == 168


def test_standup_to_dict_is_json_friendly(board, workspace) -> None:
    board.tasks.create(workspace.id, "Only")

    data = daily_standup(board.activity, [], workspace.id).to_dict()

    assert data["total"] == 1
    assert data["buckets"][0]["name"] == "System/Human"
    assert data["buckets"][0]["by_type"] == {"task_created": 1}
