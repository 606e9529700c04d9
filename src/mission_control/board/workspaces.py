from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from ..constants import DEFAULT_WORKSPACE_SLUG
from ..domain.models import Workspace
from ..errors import NotFoundError, ValidationError
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import slugify


class WorkspaceService:
    def __init__(self, container: Container, activity: ActivityLog) -> None:
        self._container = container
        self._repo = container.workspaces
        self._activity = activity

    def create(self, name: str, slug: Optional[str] = None) -> Workspace:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Workspace name cannot be empty")
        clean_slug = slugify(slug or clean_name)
        if not clean_slug:
            raise ValidationError("Workspace slug cannot be empty")
        if self.get_by_slug(clean_slug) is not None:
            raise ValidationError("Workspace slug already exists")
        workspace = Workspace(name=clean_name, slug=clean_slug, created_at=self._container.now().isoformat())
        self._repo.upsert(workspace)
        logger.info("Created workspace {} ({})", workspace.slug, workspace.id)
        return workspace

    def list(self) -> list[Workspace]:
        return sorted(self._repo.list(), key=lambda ws: ws.name.lower())

    def get(self, workspace_id: str) -> Workspace:
        workspace = self._repo.get(workspace_id)
        if workspace is None:
            raise NotFoundError("workspace", workspace_id, "Workspace not found")
        return workspace

    def find(self, workspace_id: str) -> Optional[Workspace]:
        return self._repo.get(workspace_id)

    def get_by_slug(self, slug: str) -> Optional[Workspace]:
        wanted = slugify(slug)
        for workspace in self._repo.list():
            if workspace.slug == wanted:
                return workspace
        return None

    def resolve(self, ref: str) -> Workspace:
        """Find a workspace by id or slug."""
        workspace = self._repo.get(ref) or self.get_by_slug(ref)
        if workspace is None:
            raise NotFoundError("workspace", ref, "Workspace not found")
        return workspace

    def ensure_default(self) -> Workspace:
        existing = self.get_by_slug(DEFAULT_WORKSPACE_SLUG)
        if existing is not None:
            return existing
        return self.create("Default", DEFAULT_WORKSPACE_SLUG)

    def migrate_to_workspaces(self) -> dict[str, Any]:
        """Attach records written before workspaces existed to the default workspace."""
        workspace = self.ensure_default()

        def _orphan(item: Any) -> bool:
            return not getattr(item, "workspace_id", "")

        def _adopt(item: Any) -> Any:
            item.workspace_id = workspace.id
            return item

        counts = {
            "agents": self._container.agents.update_where(_orphan, _adopt),
            "tasks": self._container.tasks.update_where(_orphan, _adopt),
            "messages": self._container.messages.update_where(_orphan, _adopt),
            "notifications": self._container.notifications.update_where(_orphan, _adopt),
            "run_requests": self._container.run_requests.update_where(_orphan, _adopt),
            "activities": self._container.activities.assign_workspace(workspace.id),
        }
        total = sum(counts.values())
        if total:
            summary = ", ".join(f"{count} {kind}" for kind, count in counts.items() if count)
            self._activity.record(workspace.id, "migration", f"Moved {summary} into workspace {workspace.slug}")
        return {"workspace_id": workspace.id, "slug": workspace.slug, "migrated": counts}
