from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..domain.models import Agent, Message, Notification, RunRequest, Task, Workspace
from ..utils import Clock, utc_now
from .bootstrap import STATE_FILES, ensure_state_root
from .file_repos import FileActivityRepository, FileCollectionRepository, FileConfigRepository


class Container:
    """Wire the file repositories of one project state root."""

    def __init__(self, project_dir: Path, clock: Optional[Clock] = None) -> None:
        self.project_dir = project_dir.resolve()
        self.state_root = ensure_state_root(self.project_dir)
        self.clock: Clock = clock or utc_now

        self.workspaces = self._collection("workspaces", Workspace.from_dict)
        self.agents = self._collection("agents", Agent.from_dict)
        self.tasks = self._collection("tasks", Task.from_dict)
        self.messages = self._collection("messages", Message.from_dict)
        self.notifications = self._collection("notifications", Notification.from_dict)
        self.run_requests = self._collection("run_requests", RunRequest.from_dict)
        self.activities = FileActivityRepository(
            self.state_root / STATE_FILES["activities"], self.state_root / "activities.lock"
        )
        self.config = FileConfigRepository(self.state_root / STATE_FILES["config"], self.state_root / "config.lock")

    def _collection(self, key: str, loader) -> FileCollectionRepository:
        return FileCollectionRepository(
            self.state_root / STATE_FILES[key],
            self.state_root / f"{key}.lock",
            key,
            loader=loader,
        )

    def now(self):
        return self.clock()
