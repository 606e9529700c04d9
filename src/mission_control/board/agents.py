from __future__ import annotations

from typing import Optional

from ..constants import AGENT_LEVELS, AGENT_STATUSES, LEAD_LEVEL
from ..domain.guards import require_owned
from ..domain.models import Agent
from ..errors import NotFoundError, ValidationError
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import next_stamp
from .workspaces import WorkspaceService


class AgentService:
    def __init__(self, container: Container, activity: ActivityLog, workspaces: WorkspaceService) -> None:
        self._container = container
        self._repo = container.agents
        self._activity = activity
        self._workspaces = workspaces

    def list(self, workspace_id: str, status: Optional[str] = None) -> list[Agent]:
        agents = self._repo.list(workspace_id)
        if status is not None:
            agents = [agent for agent in agents if agent.status == status]
        return agents

    def get(self, workspace_id: str, agent_id: str) -> Agent:
        return require_owned(self._repo.get(agent_id), "agent", agent_id, workspace_id)

    def find_by_name(self, workspace_id: str, name: str) -> Optional[Agent]:
        wanted = (name or "").strip().lower()
        if not wanted:
            return None
        for agent in self._repo.list(workspace_id):
            if agent.name.lower() == wanted:
                return agent
        return None

    def resolve(self, workspace_id: str, ref: str) -> Agent:
        """Find an agent by id, then by case-insensitive name."""
        clean = (ref or "").strip()
        if not clean:
            raise ValidationError("Agent reference cannot be empty")
        by_id = self._repo.get(clean)
        if by_id is not None:
            return require_owned(by_id, "agent", clean, workspace_id)
        by_name = self.find_by_name(workspace_id, clean)
        if by_name is None:
            raise NotFoundError("agent", clean)
        return by_name

    def upsert(
        self,
        workspace_id: str,
        name: str,
        *,
        role: Optional[str] = None,
        level: Optional[str] = None,
        status: Optional[str] = None,
        prompt: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[list[str]] = None,
        agent_id: Optional[str] = None,
    ) -> Agent:
        """Create an agent, or update the one matching `agent_id` or `name`."""
        self._workspaces.get(workspace_id)
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Agent name cannot be empty")
        clean_level = level.upper() if level else None
        if clean_level is not None and clean_level not in AGENT_LEVELS:
            raise ValidationError(f"Invalid agent level: {level}")
        if status is not None and status not in AGENT_STATUSES:
            raise ValidationError(f"Invalid agent status: {status}")

        same_name = self.find_by_name(workspace_id, clean_name)
        if agent_id:
            existing: Optional[Agent] = self.get(workspace_id, agent_id)
            if same_name is not None and same_name.id != agent_id:
                raise ValidationError(f"Agent name already exists: {clean_name}")
        else:
            existing = same_name

        now = self._container.now().isoformat()
        if existing is None:
            agent = Agent(
                workspace_id=workspace_id,
                name=clean_name,
                role=(role or "").strip(),
                level=clean_level or "SPC",  # type: ignore[arg-type]
                status=status or "idle",  # type: ignore[arg-type]
                prompt=prompt,
                notes=notes,
                tags=list(tags or []),
                created_at=now,
                updated_at=now,
            )
            verb = "created"
        else:
            agent = existing
            agent.name = clean_name
            if role is not None:
                agent.role = role.strip()
            if clean_level is not None:
                agent.level = clean_level  # type: ignore[assignment]
            if status is not None:
                agent.status = status  # type: ignore[assignment]
            if prompt is not None:
                agent.prompt = prompt
            if notes is not None:
                agent.notes = notes
            if tags is not None:
                agent.tags = list(tags)
            agent.updated_at = next_stamp(agent.updated_at, self._container.clock)
            verb = "updated"
        self._repo.upsert(agent)
        self._activity.record(
            workspace_id,
            "agent_upsert",
            f"Agent {agent.name} {verb} ({agent.level}, {agent.status})",
            agent_id=agent.id,
        )
        return agent

    def set_current_task(self, workspace_id: str, agent_id: str, task_id: Optional[str]) -> Optional[Agent]:
        self.get(workspace_id, agent_id)

        def _apply(agent: Agent) -> Optional[Agent]:
            if agent.current_task_id == task_id:
                return None
            agent.current_task_id = task_id
            agent.updated_at = next_stamp(agent.updated_at, self._container.clock)
            return agent

        return self._repo.mutate(agent_id, _apply)

    def pick_default_assignee(self, workspace_id: str) -> Optional[Agent]:
        """Prefer an active lead, otherwise the first active agent."""
        active = self.list(workspace_id, status="active")
        for agent in active:
            if agent.level == LEAD_LEVEL:
                return agent
        return active[0] if active else None
