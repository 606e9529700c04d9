from __future__ import annotations

from mission_control.domain.models import Actor, Agent, Message, RunRequest, Task
from mission_control.utils import next_stamp, slugify, truncate


def test_task_from_dict_sanitizes_legacy_records() -> None:
    task = Task.from_dict(
        {
            "id": "task-1",
            "title": "Old",
            "status": "todo",
            "priority": "urgent",
            "assignee_ids": ["a", "a", None, "b"],
            "created_at": "2024-01-01T00:00:00+00:00",
        }
    )

    assert task.status == "inbox"
    assert task.priority is None
    assert task.assignee_ids == ["a", "b"]
    assert task.updated_at == "2024-01-01T00:00:00+00:00"
    assert task.workspace_id == ""


def test_agent_from_dict_normalizes_level() -> None:
    agent = Agent.from_dict({"name": "Jarvis", "level": "coord", "status": "sleeping"})

    assert agent.level == "COORD"
    assert agent.status == "idle"
    assert agent.id.startswith("agent-")


def test_message_author_kind() -> None:
    assert Message(from_agent_id="agent-1").author_kind == "agent"
    assert Message(from_human=True).author_kind == "human"
    assert Message().to_dict()["author_kind"] == "system"


def test_run_request_terminal_flag() -> None:
    assert not RunRequest().is_terminal
    assert RunRequest(status="failed").is_terminal


def test_actor_display_names() -> None:
    assert Actor.system().display_name == "System"
    assert Actor.human().display_name == "Human"
    assert Actor.for_agent(Agent(id="agent-1", name="Friday")).display_name == "Friday"


def test_helpers() -> None:
    assert truncate("  short  ", 10) == "short"
    assert truncate("abcdef", 4) == "abc…"
    assert slugify("  Hello, World  ") == "hello-world"
    stamp = "2030-01-01T00:00:00+00:00"
    assert next_stamp(stamp) == "2030-01-01T00:00:00.000001+00:00"
