"""Durable queue of "run this agent now" requests.

Requests start `pending` and end in `done` or `failed`. The queue is
at-least-once: a consumer that crashes before `mark_done` leaves the request
pending for the next poll.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from loguru import logger

from ..constants import RUN_REQUEST_TERMINAL
from ..domain.guards import require_owned
from ..domain.models import RunRequest
from ..errors import NotFoundError, PolicyViolation, ValidationError, WrongTenantError
from ..events.activity import ActivityLog
from ..storage.container import Container
from ..utils import clamp, next_stamp, stamp_key

if TYPE_CHECKING:
    from ..board.agents import AgentService


class RunRequestQueue:
    def __init__(self, container: Container, activity: ActivityLog, agents: "AgentService") -> None:
        self._container = container
        self._repo = container.run_requests
        self._activity = activity
        self._agents = agents

    def enqueue(self, workspace_id: str, agent_id: str, note: Optional[str] = None) -> RunRequest:
        agent = self._agents.get(workspace_id, agent_id)
        now = self._container.now().isoformat()
        request = RunRequest(
            workspace_id=workspace_id,
            agent_id=agent.id,
            note=(note or "").strip() or None,
            created_at=now,
            updated_at=now,
        )
        self._repo.upsert(request)
        self._activity.record(workspace_id, "run_request", f"Run requested for {agent.name}", agent_id=agent.id)
        logger.debug("Enqueued run request {} for agent {}", request.id, agent.id)
        return request

    def get(self, workspace_id: str, request_id: str) -> RunRequest:
        return require_owned(self._repo.get(request_id), "run request", request_id, workspace_id)

    def list_pending(self, workspace_id: Optional[str] = None, limit: Optional[int] = 50) -> list[RunRequest]:
        """Pending requests, oldest first, optionally scoped to one workspace."""
        bounded = clamp(limit, 1, 1000, 50)
        pending = [r for r in self._repo.list(workspace_id) if r.status == "pending"]
        pending.sort(key=lambda r: stamp_key(r.created_at))
        return pending[:bounded]

    def list_for_agent(self, workspace_id: str, agent_id: str, limit: Optional[int] = 5) -> list[RunRequest]:
        """Most recent requests for one agent, newest first."""
        bounded = clamp(limit, 1, 100, 5)
        items = [r for r in self._repo.list(workspace_id) if r.agent_id == agent_id]
        items.sort(key=lambda r: stamp_key(r.created_at), reverse=True)
        return items[:bounded]

    def mark_done(
        self,
        request_id: str,
        status: str,
        note: Optional[str] = None,
        workspace_id: Optional[str] = None,
    ) -> RunRequest:
        """Move a request to a terminal status; repeating the same status is a no-op."""
        if status not in RUN_REQUEST_TERMINAL:
            raise ValidationError(f"Invalid run request status: {status}")
        existing = self._repo.get(request_id)
        if existing is None:
            raise NotFoundError("run request", request_id, "Run request not found")
        if workspace_id is not None and existing.workspace_id != workspace_id:
            raise WrongTenantError("run request", request_id, workspace_id)
        clock = self._container.clock

        def _apply(request: RunRequest) -> Optional[RunRequest]:
            if request.is_terminal:
                if request.status == status:
                    return None
                raise PolicyViolation(f"Run request {request.id} is already {request.status}")
            request.status = status  # type: ignore[assignment]
            request.note = note
            request.updated_at = next_stamp(request.updated_at, clock)
            return request

        updated = self._repo.mutate(request_id, _apply)
        if updated is None:
            raise NotFoundError("run request", request_id, "Run request not found")
        return updated

    def clear_pending(self, workspace_id: str) -> int:
        """Mark every pending request of a workspace done with note `cleared`."""
        clock = self._container.clock

        def _pending(request: RunRequest) -> bool:
            return request.workspace_id == workspace_id and request.status == "pending"

        def _clear(request: RunRequest) -> RunRequest:
            request.status = "done"
            request.note = "cleared"
            request.updated_at = next_stamp(request.updated_at, clock)
            return request

        cleared = self._repo.update_where(_pending, _clear)
        if cleared:
            logger.info("Cleared {} pending run request(s) in {}", cleared, workspace_id)
        return cleared
