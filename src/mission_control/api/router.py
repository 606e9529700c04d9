from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from ..board.context import Board
from ..domain.models import Actor, Workspace
from ..events.standup import daily_standup


class CreateWorkspaceRequest(BaseModel):
    name: str
    slug: Optional[str] = None


class UpsertAgentRequest(BaseModel):
    name: str
    role: Optional[str] = None
    level: Optional[str] = None
    status: Optional[str] = None
    prompt: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    agent_id: Optional[str] = None


class ActorRequest(BaseModel):
    actor_agent_id: Optional[str] = None
    actor_name: Optional[str] = None


class CreateTaskRequest(ActorRequest):
    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    priority: Optional[str] = None
    status: Optional[str] = None


class TransitionRequest(ActorRequest):
    status: str


class SetAssigneesRequest(ActorRequest):
    assignee_ids: list[str] = Field(default_factory=list)


class AssignRequest(ActorRequest):
    agent_id: str


class PostMessageRequest(ActorRequest):
    content: str


class EnqueueRunRequest(BaseModel):
    agent_id: str
    note: Optional[str] = None


def _actor(board: Board, workspace: Workspace, body: ActorRequest) -> Actor:
    if body.actor_agent_id:
        return Actor.for_agent(board.agents.get(workspace.id, body.actor_agent_id))
    return Actor.human(body.actor_name)


def create_router(resolve_board: Callable[[], Board]) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["mission-control"])

    def _ctx(workspace_ref: str) -> tuple[Board, Workspace]:
        board = resolve_board()
        return board, board.workspaces.resolve(workspace_ref)

    # Workspaces

    @router.get("/workspaces")
    async def list_workspaces() -> dict[str, Any]:
        board = resolve_board()
        return {"workspaces": [ws.to_dict() for ws in board.workspaces.list()]}

    @router.post("/workspaces")
    async def create_workspace(body: CreateWorkspaceRequest) -> dict[str, Any]:
        board = resolve_board()
        return {"workspace": board.workspaces.create(body.name, body.slug).to_dict()}

    # Agents

    @router.get("/workspaces/{workspace}/agents")
    async def list_agents(workspace: str, status: Optional[str] = Query(None)) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"agents": [agent.to_dict() for agent in board.agents.list(ws.id, status=status)]}

    @router.post("/workspaces/{workspace}/agents")
    async def upsert_agent(workspace: str, body: UpsertAgentRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        agent = board.agents.upsert(
            ws.id,
            body.name,
            role=body.role,
            level=body.level,
            status=body.status,
            prompt=body.prompt,
            notes=body.notes,
            tags=body.tags,
            agent_id=body.agent_id,
        )
        return {"agent": agent.to_dict()}

    # Tasks

    @router.get("/workspaces/{workspace}/tasks")
    async def list_tasks(
        workspace: str,
        status: Optional[str] = Query(None),
        assignee_id: Optional[str] = Query(None),
        limit: Optional[int] = Query(None, ge=1, le=1000),
    ) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        tasks = board.tasks.list(ws.id, status=status, assignee_id=assignee_id, limit=limit)
        return {"tasks": [task.to_dict() for task in tasks]}

    @router.post("/workspaces/{workspace}/tasks")
    async def create_task(workspace: str, body: CreateTaskRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        task = board.tasks.create(
            ws.id,
            body.title,
            description=body.description,
            tags=body.tags,
            priority=body.priority,
            initial_status=body.status,
            actor=_actor(board, ws, body),
        )
        return {"task": task.to_dict()}

    @router.get("/workspaces/{workspace}/tasks/{task_id}")
    async def get_task(workspace: str, task_id: str) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"task": board.tasks.get(ws.id, task_id).to_dict()}

    @router.post("/workspaces/{workspace}/tasks/{task_id}/transition")
    async def transition_task(workspace: str, task_id: str, body: TransitionRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        task = board.tasks.transition(ws.id, task_id, body.status, _actor(board, ws, body))
        return {"task": task.to_dict()}

    @router.put("/workspaces/{workspace}/tasks/{task_id}/assignees")
    async def set_assignees(workspace: str, task_id: str, body: SetAssigneesRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        task = board.tasks.set_assignees(ws.id, task_id, body.assignee_ids, _actor(board, ws, body))
        return {"task": task.to_dict()}

    @router.post("/workspaces/{workspace}/tasks/{task_id}/assign")
    async def assign_task(workspace: str, task_id: str, body: AssignRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        task = board.tasks.assign(ws.id, task_id, body.agent_id, _actor(board, ws, body))
        return {"task": task.to_dict()}

    @router.post("/workspaces/{workspace}/tasks/{task_id}/unassign")
    async def unassign_task(workspace: str, task_id: str, body: AssignRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        task = board.tasks.unassign(ws.id, task_id, body.agent_id, _actor(board, ws, body))
        return {"task": task.to_dict()}

    # Messages

    @router.get("/workspaces/{workspace}/tasks/{task_id}/messages")
    async def list_messages(workspace: str, task_id: str, limit: Optional[int] = Query(None, ge=1, le=1000)) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        messages = board.messages.list_for_task(ws.id, task_id, limit=limit)
        return {"messages": [message.to_dict() for message in messages]}

    @router.post("/workspaces/{workspace}/tasks/{task_id}/messages")
    async def post_message(workspace: str, task_id: str, body: PostMessageRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        message = board.messages.post(ws.id, task_id, body.content, _actor(board, ws, body))
        return {"message": message.to_dict()}

    # Notifications

    @router.get("/workspaces/{workspace}/agents/{agent_id}/notifications")
    async def list_notifications(
        workspace: str,
        agent_id: str,
        undelivered_only: bool = Query(True),
        limit: int = Query(50, ge=1, le=200),
    ) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        board.agents.get(ws.id, agent_id)
        items = board.notifications.for_agent(ws.id, agent_id, undelivered_only=undelivered_only, limit=limit)
        return {
            "notifications": [n.to_dict() for n in items],
            "total_undelivered": board.notifications.total_undelivered(ws.id, agent_id),
        }

    @router.post("/workspaces/{workspace}/notifications/{notification_id}/delivered")
    async def mark_delivered(workspace: str, notification_id: str) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"notification": board.notifications.mark_delivered(ws.id, notification_id).to_dict()}

    # Run requests

    @router.post("/workspaces/{workspace}/run-requests")
    async def enqueue_run(workspace: str, body: EnqueueRunRequest) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"run_request": board.run_requests.enqueue(ws.id, body.agent_id, body.note).to_dict()}

    @router.get("/workspaces/{workspace}/run-requests")
    async def list_pending_runs(workspace: str, limit: int = Query(50, ge=1, le=1000)) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"run_requests": [r.to_dict() for r in board.run_requests.list_pending(ws.id, limit=limit)]}

    # Activity

    @router.get("/workspaces/{workspace}/activities")
    async def list_activities(
        workspace: str,
        limit: int = Query(50, ge=1, le=500),
        type: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        return {"activities": [a.to_dict() for a in board.activity.recent(ws.id, limit=limit, activity_type=type)]}

    @router.get("/workspaces/{workspace}/standup")
    async def standup(
        workspace: str,
        hours: int = Query(24, ge=1, le=168),
        limit: int = Query(500, ge=1, le=2000),
    ) -> dict[str, Any]:
        board, ws = _ctx(workspace)
        report = daily_standup(board.activity, board.agents.list(ws.id), ws.id, hours=hours, limit=limit)
        return {"standup": report.to_dict()}

    return router
