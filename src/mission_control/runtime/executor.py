"""One tick of a regular (non-coordinator) agent.

The executor picks the agent's focus task, decides whether the agent should
act, and when it does: advances `assigned` work to `in_progress`, calls the
generator, posts the reply to the task thread and applies a declared
`STATUS:` marker if it is legal from the task's current status.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from loguru import logger

from ..config import ExecutorPolicy
from ..constants import EXECUTOR_STATUS_TARGETS, EXECUTOR_TRANSITIONS, FOCUS_STATUSES
from ..domain.models import Actor, Agent, Notification, Task
from ..errors import GenerateError, InvocationCancelled, PolicyViolation
from ..utils import minutes_since
from .generate import Generator
from .prompts import build_executor_prompt
from .protocol import find_status_marker, parse_status_marker

if TYPE_CHECKING:
    from ..board.context import Board


@dataclass(frozen=True)
class ExecutionOutcome:
    agent_id: str
    acted: bool
    reason: str
    task_id: Optional[str] = None
    message_id: Optional[str] = None
    declared_status: Optional[str] = None
    applied_status: Optional[str] = None


class AgentExecutor:
    def __init__(self, board: "Board", generator: Generator, policy: Optional[ExecutorPolicy] = None) -> None:
        self._board = board
        self._generator = generator
        self.policy = policy or ExecutorPolicy()

    def _clock(self):
        return self._board.container.clock()

    def _heartbeat(self, agent: Agent, tasks: list[Task], notifications: list[Notification], focus: Optional[Task], note: str) -> None:
        if focus is None and not notifications:
            text = f"{agent.name} heartbeat: idle"
        else:
            text = f"{agent.name} heartbeat: {len(tasks)} tasks / {len(notifications)} notifications"
            if focus is not None:
                text += f" • top: “{focus.title}” ({focus.status})"
        if note:
            text += f" • {note}"
        self._board.activity.record(agent.workspace_id, "heartbeat", text, agent_id=agent.id, task_id=focus.id if focus else None)

    def should_act(self, workspace_id: str, agent: Agent, task: Task) -> tuple[bool, str]:
        """Apply dwell and debounce thresholds to the focus task."""
        now = self._clock()
        since_update = minutes_since(task.updated_at, now) or 0.0
        dwell = self.policy.dwell_for(task.status)
        if since_update < dwell:
            return False, f"waiting: {since_update:.1f}m in {task.status} (dwell {dwell:g}m)"
        last = self._board.messages.last_from_agent(workspace_id, task.id, agent.id)
        if last is not None:
            since_spoke = minutes_since(last.created_at, now)
            if since_spoke is not None and since_spoke < self.policy.debounce_minutes:
                return False, f"waiting: spoke {since_spoke:.1f}m ago (debounce {self.policy.debounce_minutes:g}m)"
        return True, "dwell elapsed"

    def run(
        self,
        workspace_id: str,
        agent_id: str,
        *,
        force: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionOutcome:
        board = self._board
        agent = board.agents.get(workspace_id, agent_id)
        workspace = board.workspaces.get(workspace_id)
        notifications = board.notifications.for_agent(
            workspace_id, agent.id, undelivered_only=True, limit=self.policy.notification_limit
        )
        tasks = board.tasks.list(workspace_id, assignee_id=agent.id, limit=self.policy.task_limit)
        focus = next((task for task in tasks if task.status in FOCUS_STATUSES), None)

        if focus is None:
            self._heartbeat(agent, tasks, notifications, None, "")
            return ExecutionOutcome(agent_id=agent.id, acted=False, reason="no focus task")

        if force:
            act, reason = True, "forced"
        else:
            act, reason = self.should_act(workspace_id, agent, focus)
        if not act:
            self._heartbeat(agent, tasks, notifications, focus, reason)
            return ExecutionOutcome(agent_id=agent.id, acted=False, reason=reason, task_id=focus.id)

        actor = Actor.for_agent(agent)
        started_status = focus.status
        board.agents.set_current_task(workspace_id, agent.id, focus.id)
        if self.policy.auto_advance and focus.status == "assigned":
            focus = board.tasks.transition(workspace_id, focus.id, "in_progress", actor)

        thread = board.messages.list_for_task(workspace_id, focus.id, limit=self.policy.message_context)
        names = {a.id: a.name for a in board.agents.list(workspace_id)}
        prompt = build_executor_prompt(agent, workspace, focus, thread, notifications, names)
        logger.info("Agent {} acting on {} ({})", agent.name, focus.id, reason)
        text = self._generator.generate(prompt, timeout=self.policy.generate_timeout, cancel=cancel)
        if not (text or "").strip():
            raise GenerateError(f"Generator returned an empty response for {agent.name}")
        if cancel is not None and cancel.is_set():
            raise InvocationCancelled(f"Invocation for {agent.name} was cancelled")

        message = board.messages.post(workspace_id, focus.id, text, actor)

        current = board.tasks.get(workspace_id, focus.id)
        declared = find_status_marker(text)
        legal = EXECUTOR_STATUS_TARGETS & EXECUTOR_TRANSITIONS.get(current.status, frozenset())
        target = parse_status_marker(text, legal)
        applied: Optional[str] = None
        if target is not None:
            try:
                current = board.tasks.transition(workspace_id, current.id, target, actor)
                applied = target
            except PolicyViolation as exc:
                logger.warning("Declared status ignored for {}: {}", current.id, exc)
        elif declared is not None:
            logger.info("Ignoring STATUS: {} from {} on {} task {}", declared, agent.name, current.status, current.id)

        if started_status == "assigned" and applied is None and current.status == "assigned":
            current = board.tasks.transition(workspace_id, current.id, "in_progress", actor)
            applied = "in_progress"

        board.notifications.mark_many_delivered(workspace_id, [n.id for n in notifications])
        note = f"replied; status {applied}" if applied else "replied"
        self._heartbeat(agent, tasks, notifications, current, note)
        return ExecutionOutcome(
            agent_id=agent.id,
            acted=True,
            reason=reason,
            task_id=current.id,
            message_id=message.id,
            declared_status=declared,
            applied_status=applied,
        )
