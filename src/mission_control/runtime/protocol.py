"""Parse the ACTION and STATUS markers agents embed in generated text.

An ACTION line looks like::

    ACTION: ASSIGN | taskId=task-1a2b3c4d5e | agentName=Friday

Lines that do not match the grammar are ignored. Verbs the interpreter does not
know become `UnknownAction` so the caller can report them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

_ACTION_LINE_RE = re.compile(r"^\s*(?:[-*]\s+)?ACTION\s*:\s*(?P<body>.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_VERB_RE = re.compile(r"^[A-Za-z_]+$")
_STATUS_RE = re.compile(r"STATUS\s*:\s*\**\s*([A-Za-z_-]+)", re.IGNORECASE)

_KEY_ALIASES = {
    "taskid": "task_id",
    "task": "task_id",
    "agentid": "agent_id",
    "agentname": "agent_name",
    "agent": "agent_name",
    "from": "from_agent",
    "fromagent": "from_agent",
    "to": "to_agent",
    "toagent": "to_agent",
    "title": "title",
    "description": "description",
    "desc": "description",
    "tags": "tags",
    "priority": "priority",
    "status": "status",
}


@dataclass(frozen=True)
class AssignAction:
    raw: str
    task_id: Optional[str] = None
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    verb: str = "ASSIGN"


@dataclass(frozen=True)
class CreateAction:
    raw: str
    title: Optional[str] = None
    description: Optional[str] = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    priority: Optional[str] = None
    verb: str = "CREATE"


@dataclass(frozen=True)
class ReassignAction:
    raw: str
    task_id: Optional[str] = None
    from_agent: Optional[str] = None
    to_agent: Optional[str] = None
    verb: str = "REASSIGN"


@dataclass(frozen=True)
class TriggerAction:
    raw: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    verb: str = "TRIGGER"


@dataclass(frozen=True)
class SetStatusAction:
    raw: str
    task_id: Optional[str] = None
    status: Optional[str] = None
    verb: str = "STATUS"


@dataclass(frozen=True)
class UnknownAction:
    raw: str
    verb: str = ""


Action = Union[AssignAction, CreateAction, ReassignAction, TriggerAction, SetStatusAction, UnknownAction]


def _normalize_key(key: str) -> Optional[str]:
    compact = key.strip().lower().replace("_", "").replace("-", "")
    return _KEY_ALIASES.get(compact)


def tokenize_action(body: str) -> Optional[tuple[str, dict[str, str]]]:
    """Split an ACTION body into `(VERB, params)`; None when the verb is malformed."""
    segments = [segment.strip() for segment in body.split("|")]
    verb = segments[0].upper() if segments else ""
    if not verb or not _VERB_RE.match(verb):
        return None
    params: dict[str, str] = {}
    for segment in segments[1:]:
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        name = _normalize_key(key)
        value = value.strip().strip('"').strip("'").strip()
        if name and value and name not in params:
            params[name] = value
    return verb, params


def _build(verb: str, params: dict[str, str], raw: str) -> Action:
    if verb == "ASSIGN":
        return AssignAction(raw=raw, task_id=params.get("task_id"), agent_id=params.get("agent_id"), agent_name=params.get("agent_name"))
    if verb == "CREATE":
        tags = tuple(tag.strip() for tag in params.get("tags", "").split(",") if tag.strip())
        return CreateAction(
            raw=raw,
            title=params.get("title"),
            description=params.get("description"),
            tags=tags,
            priority=params.get("priority"),
        )
    if verb == "REASSIGN":
        return ReassignAction(
            raw=raw,
            task_id=params.get("task_id"),
            from_agent=params.get("from_agent"),
            to_agent=params.get("to_agent") or params.get("agent_id") or params.get("agent_name"),
        )
    if verb == "TRIGGER":
        return TriggerAction(raw=raw, agent_id=params.get("agent_id"), agent_name=params.get("agent_name"))
    if verb == "STATUS":
        return SetStatusAction(raw=raw, task_id=params.get("task_id"), status=params.get("status"))
    return UnknownAction(raw=raw, verb=verb)


def parse_actions(text: str) -> list[Action]:
    """Parse every ACTION line of `text` in document order."""
    actions: list[Action] = []
    for match in _ACTION_LINE_RE.finditer(text or ""):
        raw = match.group(0).strip()
        parsed = tokenize_action(match.group("body"))
        if parsed is None:
            continue
        verb, params = parsed
        actions.append(_build(verb, params, raw))
    return actions


def find_status_marker(text: str) -> Optional[str]:
    """Return the last `STATUS: value` in `text`, lowercased, or None."""
    matches = _STATUS_RE.findall(text or "")
    if not matches:
        return None
    return matches[-1].strip().lower().replace("-", "_")


def parse_status_marker(text: str, allowed: frozenset[str]) -> Optional[str]:
    declared = find_status_marker(text)
    return declared if declared in allowed else None
