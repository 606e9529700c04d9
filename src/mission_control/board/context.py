from __future__ import annotations

from ..events.activity import ActivityLog
from ..queue.run_requests import RunRequestQueue
from ..storage.container import Container
from .admin import AdminService
from .agents import AgentService
from .messages import MessageService
from .notifications import NotificationService
from .tasks import TaskService
from .workspaces import WorkspaceService


class Board:
    """All board services of one container, wired together."""

    def __init__(self, container: Container) -> None:
        self.container = container
        self.activity = ActivityLog(container.activities, clock=container.clock)
        self.workspaces = WorkspaceService(container, self.activity)
        self.agents = AgentService(container, self.activity, self.workspaces)
        self.tasks = TaskService(container, self.activity, self.workspaces, self.agents)
        self.notifications = NotificationService(container)
        self.messages = MessageService(container, self.activity, self.agents, self.tasks, self.notifications)
        self.run_requests = RunRequestQueue(container, self.activity, self.agents)
        self.admin = AdminService(container, self.activity, self.workspaces)
