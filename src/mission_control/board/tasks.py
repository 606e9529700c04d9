"""Task store and board state machine.

Every mutation takes an explicit workspace id and rejects tasks or agents that
belong to another workspace. Status and assignee changes are written through
`CollectionRepository.mutate` so the check and the write share one lock.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..constants import TASK_PRIORITIES, TASK_STATUSES, TASK_TRANSITIONS
from ..domain.guards import require_owned
from ..domain.models import Actor, Task
from ..errors import NotFoundError, PolicyViolation, ValidationError
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import next_stamp, stamp_key
from .agents import AgentService
from .workspaces import WorkspaceService


def validate_status(status: str) -> str:
    value = (status or "").strip().lower()
    if value not in TASK_STATUSES:
        raise ValidationError(f"Invalid task status: {status}")
    return value


def validate_priority(priority: Optional[str]) -> Optional[str]:
    if priority is None or priority == "":
        return None
    value = priority.strip().lower()
    if value not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid task priority: {priority}")
    return value


def can_transition(current: str, target: str) -> bool:
    return current == target or target in TASK_TRANSITIONS.get(current, frozenset())


def _dedupe(ids: Iterable[str]) -> list[str]:
    out: list[str] = []
    for item in ids:
        clean = str(item).strip()
        if clean and clean not in out:
            out.append(clean)
    return out


class TaskService:
    def __init__(
        self,
        container: Container,
        activity: ActivityLog,
        workspaces: WorkspaceService,
        agents: AgentService,
    ) -> None:
        self._container = container
        self._repo = container.tasks
        self._activity = activity
        self._workspaces = workspaces
        self._agents = agents

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, workspace_id: str, task_id: str) -> Task:
        return require_owned(self._repo.get(task_id), "task", task_id, workspace_id)

    def list(
        self,
        workspace_id: str,
        *,
        status: Optional[str] = None,
        assignee_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Task]:
        """List tasks, most recently updated first."""
        tasks = self._repo.list(workspace_id)
        if status is not None:
            wanted = validate_status(status)
            tasks = [task for task in tasks if task.status == wanted]
        if assignee_id is not None:
            tasks = [task for task in tasks if assignee_id in task.assignee_ids]
        tasks.sort(key=lambda task: stamp_key(task.updated_at), reverse=True)
        if limit is not None:
            tasks = tasks[: max(0, limit)]
        return tasks

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        workspace_id: str,
        title: str,
        *,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        priority: Optional[str] = None,
        initial_status: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> Task:
        actor = actor or Actor.system()
        self._workspaces.get(workspace_id)
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError("Task title cannot be empty")
        status = validate_status(initial_status) if initial_status else "inbox"
        now = self._container.now().isoformat()
        task = Task(
            workspace_id=workspace_id,
            title=clean_title,
            description=(description or "").strip() or None,
            status=status,  # type: ignore[arg-type]
            tags=[tag.strip() for tag in (tags or []) if tag and tag.strip()],
            priority=validate_priority(priority),  # type: ignore[arg-type]
            created_at=now,
            updated_at=now,
        )
        self._repo.upsert(task)
        self._activity.record(
            workspace_id,
            "task_created",
            f"{actor.display_name} created “{task.title}”",
            agent_id=actor.agent_id,
            task_id=task.id,
        )
        return task

    def transition(self, workspace_id: str, task_id: str, new_status: str, actor: Optional[Actor] = None) -> Task:
        """Move a task to `new_status`, auto-assigning when it lands in `assigned` unowned."""
        actor = actor or Actor.system()
        target = validate_status(new_status)
        self.get(workspace_id, task_id)
        previous: dict[str, str] = {}

        def _apply(task: Task) -> Task:
            if not can_transition(task.status, target):
                raise PolicyViolation(f"Cannot transition task {task.id} from {task.status} to {target}")
            previous["status"] = task.status
            task.status = target  # type: ignore[assignment]
            task.updated_at = next_stamp(task.updated_at, self._container.clock)
            return task

        updated = self._repo.mutate(task_id, _apply)
        if updated is None:
            raise NotFoundError("task", task_id)
        self._activity.record(
            workspace_id,
            "task_status",
            f"{actor.display_name} moved “{updated.title}” from {previous['status']} to {target}",
            agent_id=actor.agent_id,
            task_id=task_id,
        )

        if target == "assigned" and not updated.assignee_ids:
            candidate = self._agents.pick_default_assignee(workspace_id)
            if candidate is not None:
                updated = self.set_assignees(workspace_id, task_id, [candidate.id], actor)
        return updated

    def set_assignees(
        self,
        workspace_id: str,
        task_id: str,
        assignee_ids: Iterable[str],
        actor: Optional[Actor] = None,
    ) -> Task:
        """Replace the assignee set; an `inbox` task with assignees becomes `assigned`."""
        actor = actor or Actor.system()
        ids = _dedupe(assignee_ids)
        assignees = [self._agents.get(workspace_id, agent_id) for agent_id in ids]
        self.get(workspace_id, task_id)
        previous: dict[str, str] = {}

        def _apply(task: Task) -> Task:
            previous["status"] = task.status
            task.assignee_ids = list(ids)
            if task.status == "inbox" and ids:
                task.status = "assigned"
            task.updated_at = next_stamp(task.updated_at, self._container.clock)
            return task

        updated = self._repo.mutate(task_id, _apply)
        if updated is None:
            raise NotFoundError("task", task_id)

        names = sorted(agent.name for agent in assignees)
        if names:
            message = f"{actor.display_name} set assignees on “{updated.title}”: {', '.join(names)}"
        else:
            message = f"{actor.display_name} cleared assignees on “{updated.title}”"
        self._activity.record(workspace_id, "task_assignees", message, agent_id=actor.agent_id, task_id=task_id)
        if previous["status"] != updated.status:
            self._activity.record(
                workspace_id,
                "task_status",
                f"{actor.display_name} moved “{updated.title}” from {previous['status']} to {updated.status}",
                agent_id=actor.agent_id,
                task_id=task_id,
            )
        return updated

    def assign(self, workspace_id: str, task_id: str, agent_id: str, actor: Optional[Actor] = None) -> Task:
        task = self.get(workspace_id, task_id)
        self._agents.get(workspace_id, agent_id)
        if agent_id in task.assignee_ids:
            return task
        return self.set_assignees(workspace_id, task_id, [*task.assignee_ids, agent_id], actor)

    def unassign(self, workspace_id: str, task_id: str, agent_id: str, actor: Optional[Actor] = None) -> Task:
        task = self.get(workspace_id, task_id)
        self._agents.get(workspace_id, agent_id)
        if agent_id not in task.assignee_ids:
            return task
        return self.set_assignees(
            workspace_id,
            task_id,
            [existing for existing in task.assignee_ids if existing != agent_id],
            actor,
        )

    def claim_unassigned(self, workspace_id: str, agent_id: str, actor: Optional[Actor] = None) -> Optional[Task]:
        """Assign the oldest unowned inbox task to an agent, preferring matching tags."""
        agent = self._agents.get(workspace_id, agent_id)
        candidates = [task for task in self._repo.list(workspace_id) if task.status == "inbox" and not task.assignee_ids]
        if not candidates:
            return None
        candidates.sort(key=lambda task: stamp_key(task.created_at))
        agent_tags = {tag.lower() for tag in agent.tags}
        matching = [task for task in candidates if agent_tags & {tag.lower() for tag in task.tags}]
        chosen = (matching or candidates)[0]
        return self.assign(workspace_id, chosen.id, agent.id, actor or Actor.for_agent(agent))
