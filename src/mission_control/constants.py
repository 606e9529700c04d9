"""Shared enums, limits and state-file names."""

from __future__ import annotations

STATE_DIR_NAME = ".mission_control"
SCHEMA_VERSION = 1

TASK_STATUSES = ("inbox", "assigned", "in_progress", "review", "done", "blocked")
TASK_PRIORITIES = ("low", "medium", "high")
AGENT_LEVELS = ("COORD", "LEAD", "SPC", "INT")
AGENT_STATUSES = ("idle", "active", "blocked")
RUN_REQUEST_STATUSES = ("pending", "done", "failed")
RUN_REQUEST_TERMINAL = ("done", "failed")

COORDINATOR_LEVEL = "COORD"
LEAD_LEVEL = "LEAD"

# Board transitions; a task may always be re-stamped with its current status.
TASK_TRANSITIONS: dict[str, frozenset[str]] = {
    "inbox": frozenset({"assigned", "in_progress", "blocked"}),
    "assigned": frozenset({"inbox", "in_progress", "review", "blocked"}),
    "in_progress": frozenset({"assigned", "review", "done", "blocked"}),
    "review": frozenset({"in_progress", "done", "blocked"}),
    "blocked": frozenset({"inbox", "assigned", "in_progress", "review"}),
    "done": frozenset(),
}

# What an agent may declare with a STATUS marker, keyed by the task's current status.
EXECUTOR_STATUS_TARGETS = frozenset({"in_progress", "review", "done", "blocked"})
EXECUTOR_TRANSITIONS: dict[str, frozenset[str]] = {
    "assigned": frozenset({"in_progress", "review", "blocked"}),
    "in_progress": frozenset({"review", "done", "blocked"}),
    "review": frozenset({"in_progress", "done", "blocked"}),
}
FOCUS_STATUSES = ("assigned", "in_progress", "review")

NOTIFICATION_PREVIEW_CHARS = 200
COMMENT_PREVIEW_CHARS = 120
DEFAULT_WORKSPACE_SLUG = "default"
SYSTEM_HUMAN_BUCKET = "System/Human"
