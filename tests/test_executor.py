from __future__ import annotations

import threading

import pytest
from conftest import ScriptedGenerator

from mission_control.config import ExecutorPolicy
from mission_control.domain.models import Actor
from mission_control.errors import GenerateError, InvocationCancelled
from mission_control.runtime.executor import AgentExecutor


def _setup(board, workspace, status: str = "assigned"):
    agent = board.agents.upsert(workspace.id, "Friday", role="Backend", status="active")
    task = board.tasks.create(workspace.id, "Fix login", description="Users get 500 on /login")
    board.tasks.assign(workspace.id, task.id, agent.id)
    if status != "assigned":
        board.tasks.transition(workspace.id, task.id, status)
    return agent, board.tasks.get(workspace.id, task.id)


def test_idle_agent_records_heartbeat(board, workspace) -> None:
    agent = board.agents.upsert(workspace.id, "Friday")
    generator = ScriptedGenerator()

    outcome = AgentExecutor(board, generator).run(workspace.id, agent.id)

    assert outcome.acted is False
    assert outcome.reason == "no focus task"
    assert generator.prompts == []
    entry = board.activity.recent(workspace.id, activity_type="heartbeat")[0]
    assert entry.message == "Friday heartbeat: idle"


def test_dwell_holds_back_fresh_task(board, workspace) -> None:
    agent, task = _setup(board, workspace)
    generator = ScriptedGenerator("should not be used")

    outcome = AgentExecutor(board, generator).run(workspace.id, agent.id)

    assert outcome.acted is False
    assert outcome.task_id == task.id
    assert outcome.reason.startswith("waiting:")
    assert generator.prompts == []
    heartbeat = board.activity.recent(workspace.id, activity_type="heartbeat")[0].message
    assert heartbeat.startswith("Friday heartbeat: 1 tasks / 0 notifications • top: “Fix login” (assigned)")


def test_acting_advances_replies_and_applies_status(board, workspace, clock) -> None:
    agent, task = _setup(board, workspace)
    board.messages.post(workspace.id, task.id, "@friday please take a look", Actor.human("Ana"))
    clock.advance(minutes=3)
    generator = ScriptedGenerator("Found the bug in the session cookie.\nSTATUS: review")

    outcome = AgentExecutor(board, generator).run(workspace.id, agent.id)

    assert outcome.acted is True
    assert outcome.declared_status == "review"
    assert outcome.applied_status == "review"
    assert board.tasks.get(workspace.id, task.id).status == "review"
    assert board.agents.get(workspace.id, agent.id).current_task_id == task.id

    prompt = generator.prompts[0]
    assert "Title: Fix login" in prompt
    assert "Status: in_progress" in prompt
    assert "Ana: @friday please take a look" in prompt
    assert "Ana mentioned you on “Fix login”" in prompt

    [reply] = [m for m in board.messages.list_for_task(workspace.id, task.id) if m.from_agent_id == agent.id]
    assert reply.content.startswith("Found the bug")
    assert board.notifications.total_undelivered(workspace.id, agent.id) == 0

    statuses = [a.message for a in reversed(board.activity.recent(workspace.id, limit=100, activity_type="task_status"))]
    assert statuses[-2:] == [
        "Friday moved “Fix login” from assigned to in_progress",
        "Friday moved “Fix login” from in_progress to review",
    ]


def test_debounce_after_recent_reply(board, workspace, clock) -> None:
    agent, task = _setup(board, workspace, status="in_progress")
    clock.advance(minutes=10)
    board.messages.post(workspace.id, task.id, "progress update", Actor.for_agent(agent))
    clock.advance(minutes=1)

    outcome = AgentExecutor(board, ScriptedGenerator()).run(workspace.id, agent.id)

    assert outcome.acted is False
    assert "debounce" in outcome.reason


def test_force_skips_thresholds(board, workspace) -> None:
    agent, _ = _setup(board, workspace)

    outcome = AgentExecutor(board, ScriptedGenerator("Working.")).run(workspace.id, agent.id, force=True)

    assert outcome.acted is True
    assert outcome.reason == "forced"


def test_illegal_declared_status_is_ignored(board, workspace) -> None:
    agent, task = _setup(board, workspace, status="in_progress")

    outcome = AgentExecutor(board, ScriptedGenerator("Back to you. STATUS: inbox")).run(
        workspace.id, agent.id, force=True
    )

    assert outcome.declared_status == "inbox"
    assert outcome.applied_status is None
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"


def test_done_is_not_reachable_from_assigned(board, workspace) -> None:
    agent, task = _setup(board, workspace)
    policy = ExecutorPolicy(auto_advance=False)

    outcome = AgentExecutor(board, ScriptedGenerator("All finished. STATUS: done"), policy).run(
        workspace.id, agent.id, force=True
    )

    assert outcome.applied_status == "in_progress"
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"


def test_fallback_moves_assigned_task_to_in_progress(board, workspace) -> None:
    agent, task = _setup(board, workspace)
    policy = ExecutorPolicy(auto_advance=False)

    outcome = AgentExecutor(board, ScriptedGenerator("Looking into it."), policy).run(
        workspace.id, agent.id, force=True
    )

    assert outcome.declared_status is None
    assert outcome.applied_status == "in_progress"
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"


def test_review_task_without_marker_stays_put(board, workspace) -> None:
    agent, task = _setup(board, workspace, status="review")

    outcome = AgentExecutor(board, ScriptedGenerator("Reviewed, looks fine so far.")).run(
        workspace.id, agent.id, force=True
    )

    assert outcome.applied_status is None
    assert board.tasks.get(workspace.id, task.id).status == "review"


def test_empty_response_raises_without_posting(board, workspace) -> None:
    agent, task = _setup(board, workspace, status="in_progress")

    with pytest.raises(GenerateError):
        AgentExecutor(board, ScriptedGenerator("   ")).run(workspace.id, agent.id, force=True)
    assert board.messages.list_for_task(workspace.id, task.id) == []


def test_in_progress_task_without_marker_has_no_fallback(board, workspace) -> None:
    agent, task = _setup(board, workspace, status="in_progress")

    outcome = AgentExecutor(board, ScriptedGenerator("Still digging.")).run(workspace.id, agent.id, force=True)

    assert outcome.acted is True
    assert outcome.applied_status is None
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"


def test_cancelled_invocation_posts_nothing(board, workspace) -> None:
    agent, task = _setup(board, workspace, status="in_progress")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(InvocationCancelled):
        AgentExecutor(board, ScriptedGenerator("Done here. STATUS: review")).run(
            workspace.id, agent.id, force=True, cancel=cancel
        )

    assert board.messages.list_for_task(workspace.id, task.id) == []
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"
