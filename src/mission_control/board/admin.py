from __future__ import annotations

from typing import Any

from loguru import logger

from ..domain.models import Task
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import next_stamp
from .workspaces import WorkspaceService


class AdminService:
    """Administrative purge and repair operations for one workspace."""

    def __init__(self, container: Container, activity: ActivityLog, workspaces: WorkspaceService) -> None:
        self._container = container
        self._activity = activity
        self._workspaces = workspaces

    def purge_workspace(self, workspace_id: str) -> dict[str, Any]:
        """Hard-delete the board contents of a workspace, keeping the workspace itself."""
        workspace = self._workspaces.get(workspace_id)

        def _owned(item: Any) -> bool:
            return getattr(item, "workspace_id", None) == workspace.id

        deleted = {
            "messages": self._container.messages.delete_where(_owned),
            "tasks": self._container.tasks.delete_where(_owned),
            "notifications": self._container.notifications.delete_where(_owned),
            "run_requests": self._container.run_requests.delete_where(_owned),
            "agents": self._container.agents.delete_where(_owned),
        }
        logger.warning("Purged workspace {}: {}", workspace.slug, deleted)
        return {"workspace_id": workspace.id, "slug": workspace.slug, "deleted": deleted}

    def normalize_assigned(self, workspace_id: str) -> int:
        """Move `inbox` tasks that already have assignees to `assigned`."""
        self._workspaces.get(workspace_id)
        clock = self._container.clock

        def _stale(task: Task) -> bool:
            return task.workspace_id == workspace_id and task.status == "inbox" and bool(task.assignee_ids)

        def _fix(task: Task) -> Task:
            task.status = "assigned"
            task.updated_at = next_stamp(task.updated_at, clock)
            return task

        fixed = self._container.tasks.update_where(_stale, _fix)
        if fixed:
            self._activity.record(workspace_id, "migration", f"Normalized {fixed} inbox task(s) with assignees to assigned")
        return fixed
