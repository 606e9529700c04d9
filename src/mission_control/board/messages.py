from __future__ import annotations

from typing import Optional

from ..constants import COMMENT_PREVIEW_CHARS
from ..domain.models import Actor, Message
from ..errors import ValidationError
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import stamp_key, truncate
from .agents import AgentService
from .notifications import NotificationService
from .tasks import TaskService


class MessageService:
    """Append-only task threads; each post records a comment and fans out mentions."""

    def __init__(
        self,
        container: Container,
        activity: ActivityLog,
        agents: AgentService,
        tasks: TaskService,
        notifications: NotificationService,
    ) -> None:
        self._container = container
        self._repo = container.messages
        self._activity = activity
        self._agents = agents
        self._tasks = tasks
        self._notifications = notifications

    def post(self, workspace_id: str, task_id: str, content: str, actor: Optional[Actor] = None) -> Message:
        actor = actor or Actor.system()
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty")
        task = self._tasks.get(workspace_id, task_id)
        if actor.kind == "agent" and actor.agent_id:
            agent = self._agents.get(workspace_id, actor.agent_id)
            actor = Actor.for_agent(agent)

        message = Message(
            workspace_id=workspace_id,
            task_id=task.id,
            from_agent_id=actor.agent_id if actor.kind == "agent" else None,
            from_human=actor.kind == "human",
            author_name=actor.display_name if actor.kind != "system" else None,
            content=text,
            created_at=self._container.now().isoformat(),
        )
        self._repo.upsert(message)
        self._activity.record(
            workspace_id,
            "comment",
            f"{actor.display_name} commented on “{task.title}”: {truncate(text, COMMENT_PREVIEW_CHARS)}",
            agent_id=actor.agent_id,
            task_id=task.id,
        )
        self._notifications.fan_out(workspace_id, message, task.title, actor.display_name)
        return message

    def list_for_task(self, workspace_id: str, task_id: str, limit: Optional[int] = None) -> list[Message]:
        """Messages on a task in posting order; `limit` keeps the most recent ones."""
        self._tasks.get(workspace_id, task_id)
        messages = [m for m in self._repo.list(workspace_id) if m.task_id == task_id]
        messages.sort(key=lambda m: stamp_key(m.created_at))
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def last_from_agent(self, workspace_id: str, task_id: str, agent_id: str) -> Optional[Message]:
        latest: Optional[Message] = None
        for message in self._repo.list(workspace_id):
            if message.task_id != task_id or message.from_agent_id != agent_id:
                continue
            if latest is None or stamp_key(message.created_at) >= stamp_key(latest.created_at):
                latest = message
        return latest
