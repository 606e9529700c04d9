from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .board.context import Board
from .config import (
    get_coordinator_limits,
    get_dispatcher_settings,
    get_executor_policy,
    get_generator_config,
    load_config,
)
from .constants import AGENT_LEVELS, AGENT_STATUSES, DEFAULT_WORKSPACE_SLUG, TASK_PRIORITIES, TASK_STATUSES
from .domain.models import Actor, Workspace
from .errors import MissionControlError
from .events.standup import StandupReport, daily_standup
from .logging_utils import configure_logging, resolve_log_level
from .queue.dispatcher import QueueDispatcher
from .runtime.generate import CommandGenerator, build_generator
from .storage.container import Container

WORKSPACE_ENV = "MISSION_CONTROL_WORKSPACE"


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> Board:
    return Board(Container(_resolve_project_dir(args.project_dir)))


def _workspace(board: Board, args: argparse.Namespace) -> Workspace:
    ref = getattr(args, "workspace", None) or os.environ.get(WORKSPACE_ENV) or DEFAULT_WORKSPACE_SLUG
    if ref == DEFAULT_WORKSPACE_SLUG:
        return board.workspaces.ensure_default()
    return board.workspaces.resolve(ref)


def _actor(board: Board, workspace: Workspace, args: argparse.Namespace) -> Actor:
    as_agent = getattr(args, "as_agent", None)
    if as_agent:
        return Actor.for_agent(board.agents.resolve(workspace.id, as_agent))
    return Actor.human(getattr(args, "actor_name", None))


def _emit(payload: dict[str, Any]) -> int:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    return 0


def _split_tags(raw: Optional[str]) -> Optional[list[str]]:
    if raw is None:
        return None
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


# Workspaces


def _workspace_create(args: argparse.Namespace) -> int:
    board = _ctx(args)
    return _emit({"workspace": board.workspaces.create(args.name, args.slug).to_dict()})


def _workspace_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    return _emit({"workspaces": [ws.to_dict() for ws in board.workspaces.list()]})


def _workspace_migrate(args: argparse.Namespace) -> int:
    board = _ctx(args)
    return _emit(board.workspaces.migrate_to_workspaces())


# Agents


def _agent_upsert(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.upsert(
        ws.id,
        args.name,
        role=args.role,
        level=args.level,
        status=args.status,
        prompt=args.prompt,
        notes=args.notes,
        tags=_split_tags(args.tags),
    )
    return _emit({"agent": agent.to_dict()})


def _agent_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    return _emit({"agents": [agent.to_dict() for agent in board.agents.list(ws.id, status=args.status)]})


def _agent_get(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    return _emit(
        {
            "agent": agent.to_dict(),
            "undelivered_notifications": board.notifications.total_undelivered(ws.id, agent.id),
            "recent_runs": [r.to_dict() for r in board.run_requests.list_for_agent(ws.id, agent.id)],
        }
    )


# Tasks


def _task_create(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    task = board.tasks.create(
        ws.id,
        args.title,
        description=args.description,
        tags=_split_tags(args.tags),
        priority=args.priority,
        initial_status=args.status,
        actor=_actor(board, ws, args),
    )
    return _emit({"task": task.to_dict()})


def _task_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    assignee_id = board.agents.resolve(ws.id, args.assignee).id if args.assignee else None
    tasks = board.tasks.list(ws.id, status=args.status, assignee_id=assignee_id, limit=args.limit)
    return _emit({"tasks": [task.to_dict() for task in tasks]})


def _task_get(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    return _emit({"task": board.tasks.get(ws.id, args.task_id).to_dict()})


def _task_status(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    task = board.tasks.transition(ws.id, args.task_id, args.status, _actor(board, ws, args))
    return _emit({"task": task.to_dict()})


def _task_assign(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    task = board.tasks.assign(ws.id, args.task_id, agent.id, _actor(board, ws, args))
    return _emit({"task": task.to_dict()})


def _task_unassign(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    task = board.tasks.unassign(ws.id, args.task_id, agent.id, _actor(board, ws, args))
    return _emit({"task": task.to_dict()})


def _task_assignees(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    ids = [board.agents.resolve(ws.id, ref).id for ref in args.agents]
    task = board.tasks.set_assignees(ws.id, args.task_id, ids, _actor(board, ws, args))
    return _emit({"task": task.to_dict()})


def _task_claim(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    task = board.tasks.claim_unassigned(ws.id, agent.id)
    return _emit({"task": task.to_dict() if task else None})


# Messages and notifications


def _message_post(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    message = board.messages.post(ws.id, args.task_id, args.content, _actor(board, ws, args))
    return _emit({"message": message.to_dict()})


def _message_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    messages = board.messages.list_for_task(ws.id, args.task_id, limit=args.limit)
    return _emit({"messages": [message.to_dict() for message in messages]})


def _notifications_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    items = board.notifications.for_agent(ws.id, agent.id, undelivered_only=not args.all, limit=args.limit)
    return _emit(
        {
            "notifications": [n.to_dict() for n in items],
            "total_undelivered": board.notifications.total_undelivered(ws.id, agent.id),
        }
    )


def _notifications_deliver(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    return _emit({"notification": board.notifications.mark_delivered(ws.id, args.notification_id).to_dict()})


# Run requests


def _run_enqueue(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    return _emit({"run_request": board.run_requests.enqueue(ws.id, agent.id, args.note).to_dict()})


def _run_pending(args: argparse.Namespace) -> int:
    board = _ctx(args)
    workspace_id = None if args.all_workspaces else _workspace(board, args).id
    pending = board.run_requests.list_pending(workspace_id, limit=args.limit)
    return _emit({"run_requests": [r.to_dict() for r in pending]})


def _run_history(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    agent = board.agents.resolve(ws.id, args.agent)
    return _emit({"run_requests": [r.to_dict() for r in board.run_requests.list_for_agent(ws.id, agent.id, limit=args.limit)]})


def _run_clear(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    return _emit({"cleared": board.run_requests.clear_pending(ws.id)})


def _run_poll(args: argparse.Namespace) -> int:
    board = _ctx(args)
    config = board.container.config.load()
    settings = get_dispatcher_settings(config)
    if not settings.enabled and not args.once:
        sys.stderr.write("Run queue is disabled (dispatcher.enabled: false)\n")
        return 1
    if args.generator_command:
        generator = CommandGenerator(command=args.generator_command)
    else:
        generator = build_generator(get_generator_config(config))
    workspace_id = None if args.all_workspaces else _workspace(board, args).id
    dispatcher = QueueDispatcher(
        board,
        generator,
        settings=settings,
        policy=get_executor_policy(config),
        limits=get_coordinator_limits(config),
        workspace_id=workspace_id,
    )
    if args.once:
        reports = dispatcher.drain(timeout=settings.invocation_timeout or None)
        dispatcher.shutdown(timeout=0)
        return _emit({"ticks": [report.to_dict() for report in reports]})

    try:
        dispatcher.run_forever()
    except KeyboardInterrupt:
        logger.info("Stopping dispatcher")
    finally:
        dispatcher.shutdown(timeout=settings.invocation_timeout, cancel=True)
    return 0


# Activity and reports


def _activity_list(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    items = board.activity.recent(ws.id, limit=args.limit, activity_type=args.type)
    return _emit({"activities": [a.to_dict() for a in items]})


def _render_standup(report: StandupReport, workspace: Workspace) -> None:
    console = Console()
    table = Table(title=f"Standup: {workspace.name} (last {report.hours}h, {report.total} events)")
    table.add_column("Agent", style="cyan")
    table.add_column("Events", justify="right")
    table.add_column("By type")
    table.add_column("Moved to")
    table.add_column("Recent")
    for bucket in report.buckets:
        table.add_row(
            bucket.name,
            str(bucket.total),
            ", ".join(f"{k}={v}" for k, v in bucket.by_type.most_common()),
            ", ".join(f"{k}={v}" for k, v in bucket.by_status.most_common()) or "-",
            "\n".join(bucket.recent),
        )
    console.print(table)


def _standup(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    report = daily_standup(board.activity, board.agents.list(ws.id), ws.id, hours=args.hours, limit=args.limit)
    if args.json:
        return _emit({"standup": report.to_dict()})
    _render_standup(report, ws)
    return 0


def _admin_purge(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    if not args.yes:
        sys.stderr.write(f"Refusing to purge {ws.slug} without --yes\n")
        return 1
    return _emit(board.admin.purge_workspace(ws.id))


def _admin_normalize(args: argparse.Namespace) -> int:
    board = _ctx(args)
    ws = _workspace(board, args)
    return _emit({"normalized": board.admin.normalize_assigned(ws.id)})


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'mission-control[server]'\n")
        return 1
    from .api import create_app

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _add_workspace_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace", "-w", help=f"Workspace slug or id (default: ${WORKSPACE_ENV} or '{DEFAULT_WORKSPACE_SLUG}')")


def _add_actor_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--as", dest="as_agent", help="Act as this agent (name or id)")
    parser.add_argument("--actor-name", help="Display name for a human actor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mission-control", description="Multi-agent task board and run queue")
    parser.add_argument("--project-dir", help="Directory holding .mission_control (default: cwd)")
    parser.add_argument("--log-level", help="Log level (default: $MISSION_CONTROL_LOG_LEVEL or config)")
    sub = parser.add_subparsers(dest="command")

    workspace = sub.add_parser("workspace", help="Manage workspaces").add_subparsers(dest="workspace_command")
    p = workspace.add_parser("create")
    p.add_argument("name")
    p.add_argument("--slug")
    p.set_defaults(func=_workspace_create)
    p = workspace.add_parser("list")
    p.set_defaults(func=_workspace_list)
    p = workspace.add_parser("migrate", help="Attach records without a workspace to 'default'")
    p.set_defaults(func=_workspace_migrate)

    agent = sub.add_parser("agent", help="Manage agents").add_subparsers(dest="agent_command")
    p = agent.add_parser("upsert")
    _add_workspace_arg(p)
    p.add_argument("name")
    p.add_argument("--role")
    p.add_argument("--level", choices=AGENT_LEVELS)
    p.add_argument("--status", choices=AGENT_STATUSES)
    p.add_argument("--prompt")
    p.add_argument("--notes")
    p.add_argument("--tags", help="Comma separated routing tags")
    p.set_defaults(func=_agent_upsert)
    p = agent.add_parser("list")
    _add_workspace_arg(p)
    p.add_argument("--status", choices=AGENT_STATUSES)
    p.set_defaults(func=_agent_list)
    p = agent.add_parser("get")
    _add_workspace_arg(p)
    p.add_argument("agent")
    p.set_defaults(func=_agent_get)

    task = sub.add_parser("task", help="Manage tasks").add_subparsers(dest="task_command")
    p = task.add_parser("create")
    _add_workspace_arg(p)
    _add_actor_args(p)
    p.add_argument("title")
    p.add_argument("--description")
    p.add_argument("--tags")
    p.add_argument("--priority", choices=TASK_PRIORITIES)
    p.add_argument("--status", choices=TASK_STATUSES)
    p.set_defaults(func=_task_create)
    p = task.add_parser("list")
    _add_workspace_arg(p)
    p.add_argument("--status", choices=TASK_STATUSES)
    p.add_argument("--assignee")
    p.add_argument("--limit", type=int)
    p.set_defaults(func=_task_list)
    p = task.add_parser("get")
    _add_workspace_arg(p)
    p.add_argument("task_id")
    p.set_defaults(func=_task_get)
    p = task.add_parser("status")
    _add_workspace_arg(p)
    _add_actor_args(p)
    p.add_argument("task_id")
    p.add_argument("status", choices=TASK_STATUSES)
    p.set_defaults(func=_task_status)
    for name, handler in (("assign", _task_assign), ("unassign", _task_unassign)):
        p = task.add_parser(name)
        _add_workspace_arg(p)
        _add_actor_args(p)
        p.add_argument("task_id")
        p.add_argument("agent")
        p.set_defaults(func=handler)
    p = task.add_parser("assignees", help="Replace the assignee set")
    _add_workspace_arg(p)
    _add_actor_args(p)
    p.add_argument("task_id")
    p.add_argument("agents", nargs="*")
    p.set_defaults(func=_task_assignees)
    p = task.add_parser("claim", help="Assign the oldest unowned inbox task to an agent")
    _add_workspace_arg(p)
    p.add_argument("agent")
    p.set_defaults(func=_task_claim)

    message = sub.add_parser("message", help="Task threads").add_subparsers(dest="message_command")
    p = message.add_parser("post")
    _add_workspace_arg(p)
    _add_actor_args(p)
    p.add_argument("task_id")
    p.add_argument("content")
    p.set_defaults(func=_message_post)
    p = message.add_parser("list")
    _add_workspace_arg(p)
    p.add_argument("task_id")
    p.add_argument("--limit", type=int)
    p.set_defaults(func=_message_list)

    notifications = sub.add_parser("notifications", help="Agent notifications").add_subparsers(dest="notifications_command")
    p = notifications.add_parser("list")
    _add_workspace_arg(p)
    p.add_argument("agent")
    p.add_argument("--all", action="store_true", help="Include delivered notifications")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_notifications_list)
    p = notifications.add_parser("deliver")
    _add_workspace_arg(p)
    p.add_argument("notification_id")
    p.set_defaults(func=_notifications_deliver)

    run = sub.add_parser("run", help="Run-request queue").add_subparsers(dest="run_command")
    p = run.add_parser("enqueue")
    _add_workspace_arg(p)
    p.add_argument("agent")
    p.add_argument("--note")
    p.set_defaults(func=_run_enqueue)
    p = run.add_parser("pending")
    _add_workspace_arg(p)
    p.add_argument("--all-workspaces", action="store_true")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_run_pending)
    p = run.add_parser("history")
    _add_workspace_arg(p)
    p.add_argument("agent")
    p.add_argument("--limit", type=int, default=5)
    p.set_defaults(func=_run_history)
    p = run.add_parser("clear")
    _add_workspace_arg(p)
    p.set_defaults(func=_run_clear)
    p = run.add_parser("poll", help="Drain the queue (--once) or poll until interrupted")
    _add_workspace_arg(p)
    p.add_argument("--all-workspaces", action="store_true")
    p.add_argument("--once", action="store_true")
    p.add_argument("--generator-command", help="Override generator.command from config")
    p.set_defaults(func=_run_poll)

    activity = sub.add_parser("activity", help="Event log").add_subparsers(dest="activity_command")
    p = activity.add_parser("list", help="Recent activity, newest first")
    _add_workspace_arg(p)
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--type")
    p.set_defaults(func=_activity_list)

    p = sub.add_parser("standup", help="Per-agent activity digest")
    _add_workspace_arg(p)
    p.add_argument("--hours", type=int, default=24)
    p.add_argument("--limit", type=int, default=500)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=_standup)

    admin = sub.add_parser("admin", help="Administrative repairs").add_subparsers(dest="admin_command")
    p = admin.add_parser("purge", help="Delete all tasks, agents, messages and runs of a workspace")
    _add_workspace_arg(p)
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=_admin_purge)
    p = admin.add_parser("normalize", help="Move inbox tasks with assignees to assigned")
    _add_workspace_arg(p)
    p.set_defaults(func=_admin_normalize)

    p = sub.add_parser("server", help="Serve the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8080)
    p.set_defaults(func=_server)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config, _ = load_config(_resolve_project_dir(args.project_dir))
    configure_logging(resolve_log_level(args.log_level, config))
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except MissionControlError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1
