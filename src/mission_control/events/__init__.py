from .activity import ActivityLog
from .standup import StandupReport, daily_standup

__all__ = ["ActivityLog", "StandupReport", "daily_standup"]
