"""Load `.mission_control/config.yaml` and extract typed settings from it."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .constants import STATE_DIR_NAME
from .io_utils import load_yaml_with_error

CONFIG_FILE = "config.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "dispatcher": {
        "enabled": True,
        "poll_interval_seconds": 30,
        "batch_size": 50,
        "max_workers": 4,
        "invocation_timeout_seconds": 300,
        "force": True,
    },
    "executor": {
        "dwell_minutes": {"assigned": 2, "in_progress": 5, "review": 5},
        "debounce_minutes": 3,
        "notification_limit": 20,
        "task_limit": 20,
        "message_context": 5,
        "auto_advance": True,
    },
    "coordinator": {
        "max_actions": 10,
        "max_creates": 3,
        "activity_window": 30,
        "done_retention_hours": 24,
    },
    "generator": {"type": "command", "command": "claude -p", "timeout_seconds": 300},
    "logging": {"level": "INFO"},
}


@dataclass(frozen=True)
class DispatcherSettings:
    enabled: bool = True
    poll_interval: float = 30.0
    batch_size: int = 50
    max_workers: int = 4
    invocation_timeout: float = 300.0
    force: bool = True


@dataclass(frozen=True)
class ExecutorPolicy:
    """Thresholds the executor uses to decide whether an agent should act."""

    dwell_minutes: dict[str, float] = field(
        default_factory=lambda: {"assigned": 2.0, "in_progress": 5.0, "review": 5.0}
    )
    debounce_minutes: float = 3.0
    notification_limit: int = 20
    task_limit: int = 20
    message_context: int = 5
    auto_advance: bool = True
    generate_timeout: float = 300.0

    def dwell_for(self, status: str) -> float:
        return float(self.dwell_minutes.get(status, 0.0))


@dataclass(frozen=True)
class CoordinatorLimits:
    max_actions: int = 10
    max_creates: int = 3
    activity_window: int = 30
    done_retention_hours: float = 24.0
    task_snapshot_limit: int = 500
    generate_timeout: float = 300.0


def default_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(project_dir: Path) -> tuple[dict[str, Any], Optional[str]]:
    """Load the config file of a project.

    Args:
        project_dir: Directory holding the `.mission_control` state root.

    Returns:
        A tuple of `(config, error_message)`. A missing file yields `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = load_yaml_with_error(path, {})
    if err:
        return {}, err
    if not isinstance(data, dict):
        return {}, f"{CONFIG_FILE} must contain a mapping"
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    raw = _get_nested(config, name)
    return raw if isinstance(raw, dict) else {}


def _number(raw: Any, default: float, minimum: float = 0.0) -> float:
    if isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= minimum else default


def _int(raw: Any, default: int, minimum: int = 1) -> int:
    return int(_number(raw, default, minimum))


def _flag(raw: Any, default: bool) -> bool:
    return raw if isinstance(raw, bool) else default


def get_dispatcher_settings(config: dict[str, Any]) -> DispatcherSettings:
    raw = _section(config, "dispatcher")
    base = DispatcherSettings()
    return DispatcherSettings(
        enabled=_flag(raw.get("enabled"), base.enabled),
        poll_interval=_number(raw.get("poll_interval_seconds"), base.poll_interval, 0.0),
        batch_size=_int(raw.get("batch_size"), base.batch_size),
        max_workers=_int(raw.get("max_workers"), base.max_workers),
        invocation_timeout=_number(raw.get("invocation_timeout_seconds"), base.invocation_timeout, 0.0),
        force=_flag(raw.get("force"), base.force),
    )


def get_executor_policy(config: dict[str, Any]) -> ExecutorPolicy:
    raw = _section(config, "executor")
    base = ExecutorPolicy()
    dwell = dict(base.dwell_minutes)
    raw_dwell = raw.get("dwell_minutes")
    if isinstance(raw_dwell, dict):
        for status, minutes in raw_dwell.items():
            dwell[str(status)] = _number(minutes, dwell.get(str(status), 0.0))
    timeout = _number(_get_nested(config, "generator", "timeout_seconds"), base.generate_timeout, 0.0)
    return ExecutorPolicy(
        dwell_minutes=dwell,
        debounce_minutes=_number(raw.get("debounce_minutes"), base.debounce_minutes),
        notification_limit=_int(raw.get("notification_limit"), base.notification_limit),
        task_limit=_int(raw.get("task_limit"), base.task_limit),
        message_context=_int(raw.get("message_context"), base.message_context, 0),
        auto_advance=_flag(raw.get("auto_advance"), base.auto_advance),
        generate_timeout=timeout,
    )


def get_coordinator_limits(config: dict[str, Any]) -> CoordinatorLimits:
    raw = _section(config, "coordinator")
    base = CoordinatorLimits()
    return CoordinatorLimits(
        max_actions=_int(raw.get("max_actions"), base.max_actions, 0),
        max_creates=_int(raw.get("max_creates"), base.max_creates, 0),
        activity_window=_int(raw.get("activity_window"), base.activity_window),
        done_retention_hours=_number(raw.get("done_retention_hours"), base.done_retention_hours),
        task_snapshot_limit=_int(raw.get("task_snapshot_limit"), base.task_snapshot_limit),
        generate_timeout=_number(_get_nested(config, "generator", "timeout_seconds"), base.generate_timeout, 0.0),
    )


def get_generator_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the `generator` block, falling back to the command backend."""
    raw = _section(config, "generator")
    return raw or dict(DEFAULT_CONFIG["generator"])
