from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional

from ..constants import RUN_REQUEST_STATUSES, RUN_REQUEST_TERMINAL
from ..utils import new_id, now_iso

TaskStatus = Literal["inbox", "assigned", "in_progress", "review", "done", "blocked"]
Priority = Literal["low", "medium", "high"]
AgentLevel = Literal["COORD", "LEAD", "SPC", "INT"]
AgentStatus = Literal["idle", "active", "blocked"]
RunRequestStatus = Literal["pending", "done", "failed"]
ActorKind = Literal["agent", "human", "system"]


def _str_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [str(item) for item in raw if item is not None and str(item)]


def _opt_str(raw: Any) -> Optional[str]:
    return str(raw) if raw not in (None, "") else None


@dataclass(frozen=True)
class Actor:
    """Who performed a mutation: an agent, a named human, or the system."""

    kind: ActorKind = "system"
    agent_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind="system")

    @classmethod
    def human(cls, name: Optional[str] = None) -> "Actor":
        return cls(kind="human", name=name or "Human")

    @classmethod
    def for_agent(cls, agent: "Agent") -> "Actor":
        return cls(kind="agent", agent_id=agent.id, name=agent.name)

    @property
    def display_name(self) -> str:
        if self.kind == "agent":
            return self.name or self.agent_id or "Agent"
        if self.kind == "human":
            return self.name or "Human"
        return "System"


@dataclass
class Workspace:
    id: str = field(default_factory=lambda: new_id("ws"))
    name: str = ""
    slug: str = ""
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Workspace":
        return cls(
            id=str(data.get("id") or new_id("ws")),
            name=str(data.get("name") or ""),
            slug=str(data.get("slug") or ""),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Agent:
    id: str = field(default_factory=lambda: new_id("agent"))
    workspace_id: str = ""
    name: str = ""
    role: str = ""
    level: AgentLevel = "SPC"
    status: AgentStatus = "idle"
    prompt: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    current_task_id: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Agent":
        level = str(data.get("level") or "SPC").upper()
        status = str(data.get("status") or "idle")
        return cls(
            id=str(data.get("id") or new_id("agent")),
            workspace_id=str(data.get("workspace_id") or ""),
            name=str(data.get("name") or ""),
            role=str(data.get("role") or ""),
            level=level if level in {"COORD", "LEAD", "SPC", "INT"} else "SPC",  # type: ignore[arg-type]
            status=status if status in {"idle", "active", "blocked"} else "idle",  # type: ignore[arg-type]
            prompt=_opt_str(data.get("prompt")),
            notes=_opt_str(data.get("notes")),
            tags=_str_list(data.get("tags")),
            current_task_id=_opt_str(data.get("current_task_id")),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or data.get("created_at") or now_iso()),
        )


@dataclass
class Task:
    id: str = field(default_factory=lambda: new_id("task"))
    workspace_id: str = ""
    title: str = ""
    description: Optional[str] = None
    status: TaskStatus = "inbox"
    tags: list[str] = field(default_factory=list)
    priority: Optional[Priority] = None
    assignee_ids: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        status = str(data.get("status") or "inbox")
        priority = _opt_str(data.get("priority"))
        assignees: list[str] = []
        for agent_id in _str_list(data.get("assignee_ids")):
            if agent_id not in assignees:
                assignees.append(agent_id)
        return cls(
            id=str(data.get("id") or new_id("task")),
            workspace_id=str(data.get("workspace_id") or ""),
            title=str(data.get("title") or ""),
            description=_opt_str(data.get("description")),
            status=status if status in {"inbox", "assigned", "in_progress", "review", "done", "blocked"} else "inbox",  # type: ignore[arg-type]
            tags=_str_list(data.get("tags")),
            priority=priority if priority in {"low", "medium", "high"} else None,  # type: ignore[arg-type]
            assignee_ids=assignees,
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or data.get("created_at") or now_iso()),
        )


@dataclass
class Message:
    id: str = field(default_factory=lambda: new_id("msg"))
    workspace_id: str = ""
    task_id: str = ""
    from_agent_id: Optional[str] = None
    from_human: bool = False
    author_name: Optional[str] = None
    content: str = ""
    created_at: str = field(default_factory=now_iso)

    @property
    def author_kind(self) -> ActorKind:
        if self.from_agent_id:
            return "agent"
        if self.from_human:
            return "human"
        return "system"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["author_kind"] = self.author_kind
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=str(data.get("id") or new_id("msg")),
            workspace_id=str(data.get("workspace_id") or ""),
            task_id=str(data.get("task_id") or ""),
            from_agent_id=_opt_str(data.get("from_agent_id")),
            from_human=bool(data.get("from_human", False)),
            author_name=_opt_str(data.get("author_name")),
            content=str(data.get("content") or ""),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Notification:
    id: str = field(default_factory=lambda: new_id("ntf"))
    workspace_id: str = ""
    agent_id: str = ""
    task_id: Optional[str] = None
    message_id: Optional[str] = None
    content: str = ""
    delivered: bool = False
    delivered_at: Optional[str] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            id=str(data.get("id") or new_id("ntf")),
            workspace_id=str(data.get("workspace_id") or ""),
            agent_id=str(data.get("agent_id") or ""),
            task_id=_opt_str(data.get("task_id")),
            message_id=_opt_str(data.get("message_id")),
            content=str(data.get("content") or ""),
            delivered=bool(data.get("delivered", False)),
            delivered_at=_opt_str(data.get("delivered_at")),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Activity:
    id: str = field(default_factory=lambda: new_id("act"))
    workspace_id: str = ""
    type: str = ""
    message: str = ""
    agent_id: Optional[str] = None
    task_id: Optional[str] = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Activity":
        return cls(
            id=str(data.get("id") or new_id("act")),
            workspace_id=str(data.get("workspace_id") or ""),
            type=str(data.get("type") or ""),
            message=str(data.get("message") or ""),
            agent_id=_opt_str(data.get("agent_id")),
            task_id=_opt_str(data.get("task_id")),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class RunRequest:
    id: str = field(default_factory=lambda: new_id("run"))
    workspace_id: str = ""
    agent_id: str = ""
    status: RunRequestStatus = "pending"
    note: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    @property
    def is_terminal(self) -> bool:
        return self.status in RUN_REQUEST_TERMINAL

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunRequest":
        status = str(data.get("status") or "pending")
        return cls(
            id=str(data.get("id") or new_id("run")),
            workspace_id=str(data.get("workspace_id") or ""),
            agent_id=str(data.get("agent_id") or ""),
            status=status if status in RUN_REQUEST_STATUSES else "pending",  # type: ignore[arg-type]
            note=_opt_str(data.get("note")),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or data.get("created_at") or now_iso()),
        )
