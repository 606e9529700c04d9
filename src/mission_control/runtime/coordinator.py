"""Coordinator ticks: snapshot the board, ask for ACTION lines, apply them.

Actions run in document order under two per-invocation caps (total actions
and CREATE actions). Each action is isolated: a failure is recorded as a result
line and the rest of the batch still runs.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Optional

from loguru import logger

from ..config import CoordinatorLimits
from ..constants import TASK_STATUSES
from ..domain.models import Actor, Agent
from ..errors import InvocationCancelled, MissionControlError, NotFoundError, PolicyViolation, ValidationError
from .generate import Generator
from .prompts import build_coordinator_prompt
from .protocol import (
    Action,
    AssignAction,
    CreateAction,
    ReassignAction,
    SetStatusAction,
    TriggerAction,
    UnknownAction,
    parse_actions,
)
from .snapshot import build_snapshot

if TYPE_CHECKING:
    from ..board.context import Board

ResultKind = Literal["ok", "skipped", "failed", "unknown"]
LIMIT_REACHED = "limit reached"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class ActionResult:
    action: Action
    kind: ResultKind
    detail: str
    task_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == "ok"

    @property
    def line(self) -> str:
        verb = self.action.verb or "?"
        if self.kind == "ok":
            return f"{verb}: {self.detail}"
        if self.kind == "unknown":
            return f"unknown action: {verb}"
        return f"{verb}: {self.kind}: {self.detail}"


@dataclass(frozen=True)
class CoordinationOutcome:
    agent_id: str
    results: list[ActionResult] = field(default_factory=list)
    touched_task_ids: list[str] = field(default_factory=list)

    def count(self, kind: ResultKind) -> int:
        return sum(1 for result in self.results if result.kind == kind)


def _require(value: Optional[str], message: str) -> str:
    if not value:
        raise ValidationError(message)
    return value


class CoordinatorInterpreter:
    def __init__(self, board: "Board", generator: Generator, limits: Optional[CoordinatorLimits] = None) -> None:
        self._board = board
        self._generator = generator
        self.limits = limits or CoordinatorLimits()

    def run(
        self,
        workspace_id: str,
        agent_id: str,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> CoordinationOutcome:
        board = self._board
        coordinator = board.agents.get(workspace_id, agent_id)
        snapshot = build_snapshot(
            board,
            workspace_id,
            board.container.clock(),
            activity_window=self.limits.activity_window,
            done_retention_hours=self.limits.done_retention_hours,
            task_limit=self.limits.task_snapshot_limit,
        )
        prompt = build_coordinator_prompt(coordinator, snapshot, self.limits.max_actions, self.limits.max_creates)
        text = self._generator.generate(prompt, timeout=self.limits.generate_timeout, cancel=cancel)
        if cancel is not None and cancel.is_set():
            raise InvocationCancelled(f"Coordination by {coordinator.name} was cancelled")
        actions = parse_actions(text)
        logger.info("Coordinator {} proposed {} action(s)", coordinator.name, len(actions))
        return self.apply(workspace_id, coordinator, actions, cancel=cancel)

    def apply(
        self,
        workspace_id: str,
        coordinator: Agent,
        actions: list[Action],
        *,
        cancel: Optional[threading.Event] = None,
    ) -> CoordinationOutcome:
        """Execute parsed actions under the caps, then report on the board.

        Once `cancel` is set the remaining actions are skipped as cancelled.
        """
        results: list[ActionResult] = []
        executed = 0
        creates = 0
        for action in actions:
            if cancel is not None and cancel.is_set():
                results.append(ActionResult(action, "skipped", CANCELLED, getattr(action, "task_id", None)))
                continue
            if isinstance(action, UnknownAction):
                results.append(ActionResult(action, "unknown", action.raw))
                continue
            is_create = isinstance(action, CreateAction)
            if executed >= self.limits.max_actions or (is_create and creates >= self.limits.max_creates):
                results.append(ActionResult(action, "skipped", LIMIT_REACHED, getattr(action, "task_id", None)))
                continue
            executed += 1
            if is_create:
                creates += 1
            results.append(self._execute_isolated(workspace_id, coordinator, action))

        touched: list[str] = []
        for result in results:
            if result.ok and result.task_id and result.task_id not in touched:
                touched.append(result.task_id)
        outcome = CoordinationOutcome(agent_id=coordinator.id, results=results, touched_task_ids=touched)
        self._report(workspace_id, coordinator, outcome)
        return outcome

    def _execute_isolated(self, workspace_id: str, coordinator: Agent, action: Action) -> ActionResult:
        task_id = getattr(action, "task_id", None)
        try:
            return self._execute(workspace_id, coordinator, action)
        except PolicyViolation as exc:
            return ActionResult(action, "skipped", str(exc), task_id)
        except MissionControlError as exc:
            return ActionResult(action, "failed", str(exc), task_id)
        except Exception as exc:
            logger.exception("Coordinator action crashed: {}", action.raw)
            return ActionResult(action, "failed", f"{exc.__class__.__name__}: {exc}", task_id)

    def _execute(self, workspace_id: str, coordinator: Agent, action: Action) -> ActionResult:
        board = self._board
        actor = Actor.for_agent(coordinator)
        note = f"requested by {coordinator.name}"

        if isinstance(action, AssignAction):
            task_id = _require(action.task_id, "ASSIGN requires taskId")
            agent = board.agents.resolve(workspace_id, _require(action.agent_id or action.agent_name, "ASSIGN requires agentId or agentName"))
            task = board.tasks.assign(workspace_id, task_id, agent.id, actor)
            board.run_requests.enqueue(workspace_id, agent.id, note)
            return ActionResult(action, "ok", f"assigned “{task.title}” to {agent.name}", task.id)

        if isinstance(action, CreateAction):
            task = board.tasks.create(
                workspace_id,
                _require(action.title, "CREATE requires title"),
                description=action.description,
                tags=list(action.tags),
                priority=action.priority,
                actor=actor,
            )
            return ActionResult(action, "ok", f"created “{task.title}” ({task.id})", task.id)

        if isinstance(action, ReassignAction):
            task_id = _require(action.task_id, "REASSIGN requires taskId")
            target = board.agents.resolve(workspace_id, _require(action.to_agent, "REASSIGN requires toAgent"))
            board.tasks.get(workspace_id, task_id)
            if action.from_agent:
                previous = board.agents.resolve(workspace_id, action.from_agent)
                board.tasks.unassign(workspace_id, task_id, previous.id, actor)
            task = board.tasks.assign(workspace_id, task_id, target.id, actor)
            board.run_requests.enqueue(workspace_id, target.id, note)
            return ActionResult(action, "ok", f"reassigned “{task.title}” to {target.name}", task.id)

        if isinstance(action, TriggerAction):
            agent = board.agents.resolve(workspace_id, _require(action.agent_id or action.agent_name, "TRIGGER requires agentId or agentName"))
            request = board.run_requests.enqueue(workspace_id, agent.id, note)
            return ActionResult(action, "ok", f"triggered {agent.name} ({request.id})")

        if isinstance(action, SetStatusAction):
            task_id = _require(action.task_id, "STATUS requires taskId")
            status = (action.status or "").strip().lower()
            if status not in TASK_STATUSES:
                return ActionResult(action, "skipped", f"invalid status {action.status!r}", task_id)
            task = board.tasks.transition(workspace_id, task_id, status, actor)
            return ActionResult(action, "ok", f"moved “{task.title}” to {status}", task.id)

        return ActionResult(action, "unknown", action.raw)

    def _report(self, workspace_id: str, coordinator: Agent, outcome: CoordinationOutcome) -> None:
        board = self._board
        if outcome.results:
            summary = (
                f"{coordinator.name} coordination: {outcome.count('ok')} applied, "
                f"{outcome.count('skipped')} skipped, {outcome.count('failed')} failed, "
                f"{outcome.count('unknown')} unknown | "
                + "; ".join(result.line for result in outcome.results)
            )
        else:
            summary = f"{coordinator.name} coordination: no actions"
        board.activity.record(workspace_id, "coordination", summary, agent_id=coordinator.id)

        actor = Actor.for_agent(coordinator)
        for task_id in outcome.touched_task_ids:
            lines = [result.line for result in outcome.results if result.task_id == task_id]
            body = "Coordinator update:\n" + "\n".join(f"- {line}" for line in lines)
            try:
                board.messages.post(workspace_id, task_id, body, actor)
            except NotFoundError:
                logger.debug("Task {} disappeared before the coordinator could report on it", task_id)
