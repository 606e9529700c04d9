from __future__ import annotations

from typing import Iterable, Optional

from ..constants import EXECUTOR_TRANSITIONS
from ..domain.models import Agent, Message, Notification, Task, Workspace
from .snapshot import BoardSnapshot

_EXECUTOR_MISSION = [
    "1. Read the task and the recent thread.",
    "2. Do the next concrete piece of work you can do from here and report it briefly.",
    "3. Mention a teammate with @name if you need something from them.",
    "4. End with one line `STATUS: <status>` if the task should move.",
]

_COORDINATOR_GRAMMAR = [
    "ACTION: ASSIGN | taskId=<task id> | agentName=<agent name>",
    "ACTION: CREATE | title=<title> | description=<text> | tags=<a,b> | priority=<low|medium|high>",
    "ACTION: REASSIGN | taskId=<task id> | fromAgent=<agent name> | toAgent=<agent name>",
    "ACTION: TRIGGER | agentName=<agent name>",
    "ACTION: STATUS | taskId=<task id> | status=<inbox|assigned|in_progress|review|done|blocked>",
]


def _message_author(message: Message, names: dict[str, str]) -> str:
    if message.from_agent_id:
        return names.get(message.from_agent_id, message.from_agent_id)
    if message.from_human:
        return message.author_name or "Human"
    return "System"


def build_executor_prompt(
    agent: Agent,
    workspace: Workspace,
    task: Task,
    messages: Iterable[Message],
    notifications: Iterable[Notification],
    agent_names: Optional[dict[str, str]] = None,
) -> str:
    """Prompt for a regular agent working its focus task."""
    names = agent_names or {}
    parts = [f"You are {agent.name}, {agent.role or 'a team member'} ({agent.level}) in workspace {workspace.name}."]
    if agent.prompt:
        parts.extend(["", agent.prompt.strip()])
    if agent.notes:
        parts.extend(["", "## Notes", agent.notes.strip()])

    parts.extend(["", "## Task", f"ID: {task.id}", f"Title: {task.title}", f"Status: {task.status}"])
    if task.priority:
        parts.append(f"Priority: {task.priority}")
    if task.tags:
        parts.append(f"Tags: {', '.join(task.tags)}")
    if task.description:
        parts.extend(["Description:", task.description])

    thread = list(messages)
    if thread:
        parts.extend(["", "## Recent messages"])
        for message in thread:
            parts.append(f"- {_message_author(message, names)}: {message.content}")

    inbox = list(notifications)
    if inbox:
        parts.extend(["", "## Notifications"])
        for notification in inbox:
            parts.append(f"- {notification.content}")

    allowed = sorted(EXECUTOR_TRANSITIONS.get(task.status, frozenset()))
    parts.extend(["", "## Mission", *_EXECUTOR_MISSION])
    if allowed:
        parts.append(f"Allowed STATUS values from {task.status}: {', '.join(allowed)}.")
    return "\n".join(parts)


def build_coordinator_prompt(agent: Agent, snapshot: BoardSnapshot, max_actions: int, max_creates: int) -> str:
    """Prompt for the coordinator describing the board and the ACTION grammar."""
    parts = [f"You are {agent.name}, the coordinator of workspace {snapshot.workspace_name}."]
    if agent.prompt:
        parts.extend(["", agent.prompt.strip()])

    parts.extend(["", "## Agents"])
    if not snapshot.agents:
        parts.append("(none)")
    for load in snapshot.agents:
        parts.append(f"- {load.name} [{load.level}, {load.status}] role={load.role or '-'} open_tasks={load.active_task_count}")

    parts.extend(["", "## Tasks"])
    if not snapshot.tasks:
        parts.append("(none)")
    for summary in snapshot.tasks:
        assignees = ", ".join(summary.assignee_names) or "unassigned"
        line = f"- {summary.id} “{summary.title}” status={summary.status} assignees={assignees} age={summary.age_minutes}m"
        if summary.priority:
            line += f" priority={summary.priority}"
        parts.append(line)

    if snapshot.activities:
        parts.extend(["", "## Recent activity"])
        for activity in snapshot.activities:
            parts.append(f"- [{activity.type}] {activity.message}")

    parts.extend(
        [
            "",
            "## Actions",
            "Reply with a short assessment, then one ACTION line per change, using exactly these forms:",
            *_COORDINATOR_GRAMMAR,
            f"At most {max_actions} actions and at most {max_creates} CREATE actions are applied.",
            "Use task ids and agent names exactly as listed above.",
        ]
    )
    return "\n".join(parts)
