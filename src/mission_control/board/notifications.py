from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from loguru import logger

from ..constants import NOTIFICATION_PREVIEW_CHARS
from ..domain.guards import require_owned
from ..domain.models import Agent, Message, Notification
from ..storage.container import Container
from ..utils import clamp, stamp_key, truncate

_ALL_RE = re.compile(r"(?<![\w@])@all\b", re.IGNORECASE)
_MENTION_RE = re.compile(r"@([a-z0-9_-]+)", re.IGNORECASE)


@dataclass(frozen=True)
class Mentions:
    everyone: bool = False
    names: tuple[str, ...] = field(default_factory=tuple)


def parse_mentions(text: str) -> Mentions:
    """Extract `@all` or the distinct lowercase `@name` tokens from `text`."""
    body = text or ""
    if _ALL_RE.search(body):
        return Mentions(everyone=True)
    seen: list[str] = []
    for token in _MENTION_RE.findall(body):
        name = token.lower()
        if name not in seen:
            seen.append(name)
    return Mentions(names=tuple(seen))


def resolve_recipients(mentions: Mentions, agents: Iterable[Agent]) -> list[Agent]:
    pool = list(agents)
    if mentions.everyone:
        return pool
    by_name = {agent.name.lower(): agent for agent in pool}
    out: list[Agent] = []
    for name in mentions.names:
        agent = by_name.get(name)
        if agent is not None and agent not in out:
            out.append(agent)
    return out


class NotificationService:
    def __init__(self, container: Container) -> None:
        self._container = container
        self._repo = container.notifications

    def fan_out(self, workspace_id: str, message: Message, task_title: str, actor_name: str) -> list[Notification]:
        """Write one undelivered notification per agent mentioned in `message`."""
        mentions = parse_mentions(message.content)
        if not mentions.everyone and not mentions.names:
            return []
        recipients = resolve_recipients(mentions, self._container.agents.list(workspace_id))
        preview = truncate(message.content, NOTIFICATION_PREVIEW_CHARS)
        created: list[Notification] = []
        for agent in recipients:
            notification = Notification(
                workspace_id=workspace_id,
                agent_id=agent.id,
                task_id=message.task_id,
                message_id=message.id,
                content=f"{actor_name} mentioned you on “{task_title}”: {preview}",
                created_at=self._container.now().isoformat(),
            )
            self._repo.upsert(notification)
            created.append(notification)
        if created:
            logger.debug("Message {} notified {} agent(s)", message.id, len(created))
        return created

    def for_agent(
        self,
        workspace_id: str,
        agent_id: str,
        *,
        undelivered_only: bool = True,
        limit: Optional[int] = 50,
    ) -> list[Notification]:
        """Notifications for one agent, newest first."""
        bounded = clamp(limit, 1, 200, 50)
        items = [n for n in self._repo.list(workspace_id) if n.agent_id == agent_id]
        if undelivered_only:
            items = [n for n in items if not n.delivered]
        items.sort(key=lambda n: stamp_key(n.created_at), reverse=True)
        return items[:bounded]

    def total_undelivered(self, workspace_id: str, agent_id: str) -> int:
        return sum(1 for n in self._repo.list(workspace_id) if n.agent_id == agent_id and not n.delivered)

    def mark_delivered(self, workspace_id: str, notification_id: str) -> Notification:
        require_owned(self._repo.get(notification_id), "notification", notification_id, workspace_id)
        stamp = self._container.now().isoformat()

        def _apply(notification: Notification) -> Optional[Notification]:
            if notification.delivered:
                return None
            notification.delivered = True
            notification.delivered_at = stamp
            return notification

        updated = self._repo.mutate(notification_id, _apply)
        return require_owned(updated, "notification", notification_id, workspace_id)

    def mark_many_delivered(self, workspace_id: str, notification_ids: Iterable[str]) -> int:
        wanted = set(notification_ids)
        if not wanted:
            return 0
        stamp = self._container.now().isoformat()

        def _match(notification: Notification) -> bool:
            return notification.id in wanted and notification.workspace_id == workspace_id and not notification.delivered

        def _apply(notification: Notification) -> Notification:
            notification.delivered = True
            notification.delivered_at = stamp
            return notification

        return self._repo.update_where(_match, _apply)
