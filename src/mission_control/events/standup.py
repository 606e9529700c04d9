from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from ..constants import SYSTEM_HUMAN_BUCKET
from ..domain.models import Activity, Agent
from ..utils import clamp
from .activity import ActivityLog

RECENT_PER_AGENT = 5


@dataclass
class StandupBucket:
    agent_id: Optional[str]
    name: str
    total: int = 0
    by_type: Counter = field(default_factory=Counter)
    by_status: Counter = field(default_factory=Counter)
    recent: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "total": self.total,
            "by_type": dict(self.by_type),
            "by_status": dict(self.by_status),
            "recent": list(self.recent),
        }


@dataclass
class StandupReport:
    workspace_id: str
    hours: int
    total: int
    buckets: list[StandupBucket]

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace_id": self.workspace_id,
            "hours": self.hours,
            "total": self.total,
            "buckets": [bucket.to_dict() for bucket in self.buckets],
        }


def _status_from_message(message: str) -> Optional[str]:
    parts = message.rsplit(" to ", 1)
    if len(parts) < 2:
        return None
    words = parts[1].split()
    return words[0] if words else None


def daily_standup(
    activity: ActivityLog,
    agents: list[Agent],
    workspace_id: str,
    hours: Optional[int] = 24,
    limit: Optional[int] = 500,
) -> StandupReport:
    """Group the last `hours` of activity per agent, busiest first."""
    window = clamp(hours, 1, 168, 24)
    bounded = clamp(limit, 1, 2000, 500)
    entries: list[Activity] = activity.window(workspace_id, window, bounded)
    names = {agent.id: agent.name for agent in agents}

    buckets: dict[Optional[str], StandupBucket] = {}
    for entry in entries:
        key = entry.agent_id if entry.agent_id in names else None
        bucket = buckets.get(key)
        if bucket is None:
            bucket = StandupBucket(agent_id=key, name=names.get(key, SYSTEM_HUMAN_BUCKET) if key else SYSTEM_HUMAN_BUCKET)
            buckets[key] = bucket
        bucket.total += 1
        bucket.by_type[entry.type] += 1
        if entry.type == "task_status":
            status = _status_from_message(entry.message)
            if status:
                bucket.by_status[status] += 1
        if len(bucket.recent) < RECENT_PER_AGENT:
            bucket.recent.append(entry.message)

    ordered = sorted(buckets.values(), key=lambda b: (-b.total, b.name.lower()))
    return StandupReport(workspace_id=workspace_id, hours=window, total=len(entries), buckets=ordered)
