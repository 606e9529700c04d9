from __future__ import annotations

from datetime import timedelta
from typing import Optional

from loguru import logger

from ..domain.models import Activity
from ..storage.interfaces import ActivityRepository
from ..utils import Clock, clamp, utc_now


class ActivityLog:
    """Append-only event log scoped by workspace, read through bounded windows."""

    def __init__(self, repo: ActivityRepository, clock: Optional[Clock] = None) -> None:
        self._repo = repo
        self._clock = clock or utc_now

    def record(
        self,
        workspace_id: str,
        activity_type: str,
        message: str,
        *,
        agent_id: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Activity:
        activity = Activity(
            workspace_id=workspace_id,
            type=activity_type,
            message=message,
            agent_id=agent_id,
            task_id=task_id,
            created_at=self._clock().isoformat(),
        )
        self._repo.append(activity)
        logger.debug("[{}] {}: {}", workspace_id, activity_type, message)
        return activity

    def recent(self, workspace_id: str, limit: int = 50, activity_type: Optional[str] = None) -> list[Activity]:
        """Return up to `limit` activities, newest first."""
        bounded = clamp(limit, 1, 500, 50)
        items = self._repo.list_recent(workspace_id, limit=bounded, activity_type=activity_type)
        return list(reversed(items))

    def window(self, workspace_id: str, hours: float, limit: int) -> list[Activity]:
        """Return activities from the last `hours`, newest first, at most `limit`."""
        since = (self._clock() - timedelta(hours=hours)).isoformat()
        return list(reversed(self._repo.list_recent(workspace_id, limit=limit, since=since)))
