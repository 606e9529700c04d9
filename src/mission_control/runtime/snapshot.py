from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from ..domain.models import Activity
from ..utils import minutes_since, parse_iso, stamp_key

if TYPE_CHECKING:
    from ..board.context import Board


@dataclass(frozen=True)
class AgentLoad:
    id: str
    name: str
    role: str
    level: str
    status: str
    active_task_count: int


@dataclass(frozen=True)
class TaskSummary:
    id: str
    title: str
    status: str
    priority: Optional[str]
    tags: tuple[str, ...]
    assignee_names: tuple[str, ...]
    age_minutes: int


@dataclass(frozen=True)
class BoardSnapshot:
    workspace_id: str
    workspace_name: str
    agents: list[AgentLoad] = field(default_factory=list)
    tasks: list[TaskSummary] = field(default_factory=list)
    activities: list[Activity] = field(default_factory=list)


def build_snapshot(
    board: "Board",
    workspace_id: str,
    now: datetime,
    *,
    activity_window: int = 30,
    done_retention_hours: float = 24.0,
    task_limit: int = 500,
) -> BoardSnapshot:
    """Capture agent load, open tasks and recent activity of one workspace."""
    workspace = board.workspaces.get(workspace_id)
    agents = board.agents.list(workspace_id)
    names = {agent.id: agent.name for agent in agents}
    all_tasks = board.tasks.list(workspace_id)

    load: dict[str, int] = {agent.id: 0 for agent in agents}
    for task in all_tasks:
        if task.status == "done":
            continue
        for agent_id in task.assignee_ids:
            if agent_id in load:
                load[agent_id] += 1

    done_cutoff = now - timedelta(hours=done_retention_hours)
    visible = []
    for task in sorted(all_tasks, key=lambda t: stamp_key(t.updated_at), reverse=True):
        if task.status == "done":
            updated = parse_iso(task.updated_at)
            if updated is None or updated < done_cutoff:
                continue
        visible.append(task)
        if len(visible) >= task_limit:
            break

    return BoardSnapshot(
        workspace_id=workspace.id,
        workspace_name=workspace.name,
        agents=[
            AgentLoad(
                id=agent.id,
                name=agent.name,
                role=agent.role,
                level=agent.level,
                status=agent.status,
                active_task_count=load.get(agent.id, 0),
            )
            for agent in agents
        ],
        tasks=[
            TaskSummary(
                id=task.id,
                title=task.title,
                status=task.status,
                priority=task.priority,
                tags=tuple(task.tags),
                assignee_names=tuple(names.get(agent_id, agent_id) for agent_id in task.assignee_ids),
                age_minutes=int(minutes_since(task.created_at, now) or 0),
            )
            for task in visible
        ],
        activities=board.activity.recent(workspace_id, limit=activity_window),
    )
