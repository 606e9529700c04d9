from __future__ import annotations

import threading
import time
from typing import Optional

from conftest import ScriptedGenerator

from mission_control.config import DispatcherSettings
from mission_control.domain.models import RunRequest
from mission_control.errors import GenerateError
from mission_control.queue.dispatcher import InFlightSet, QueueDispatcher


class GatedGenerator:
    """Block every call until `gate` is set, then answer with `text`."""

    def __init__(self, text: str) -> None:
        self.gate = threading.Event()
        self.text = text
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        with self._lock:
            self.calls += 1
        self.gate.wait(5)
        return self.text


def _assigned_agent(board, workspace, name: str):
    agent = board.agents.upsert(workspace.id, name, status="active")
    task = board.tasks.create(workspace.id, f"Work for {name}")
    board.tasks.assign(workspace.id, task.id, agent.id)
    return agent, task


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_in_flight_set_acquire_release() -> None:
    keys = InFlightSet()

    assert keys.try_acquire(("ws", "a"))
    assert not keys.try_acquire(("ws", "a"))
    assert ("ws", "a") in keys and len(keys) == 1
    keys.release(("ws", "a"))
    keys.release(("ws", "a"))
    assert keys.try_acquire(("ws", "a"))


def test_same_agent_requests_are_deferred_until_key_released(board, workspace) -> None:
    friday, task = _assigned_agent(board, workspace, "Friday")
    first = board.run_requests.enqueue(workspace.id, friday.id)
    second = board.run_requests.enqueue(workspace.id, friday.id)
    generator = GatedGenerator("Started. STATUS: review")
    dispatcher = QueueDispatcher(board, generator, settings=DispatcherSettings(max_workers=2, invocation_timeout=0))

    try:
        report = dispatcher.tick_once()
        assert report.dispatched == [first.id]
        assert report.deferred == [second.id]
        assert (workspace.id, friday.id) in dispatcher.in_flight

        generator.gate.set()
        assert dispatcher.wait_idle(5)
        assert (workspace.id, friday.id) not in dispatcher.in_flight
        done = board.run_requests.get(workspace.id, first.id)
        assert done.status == "done"
        assert done.note.startswith("ran at ")
        assert board.tasks.get(workspace.id, task.id).status == "review"

        assert dispatcher.tick_once().dispatched == [second.id]
        assert dispatcher.wait_idle(5)
        assert board.run_requests.get(workspace.id, second.id).status == "done"
    finally:
        generator.gate.set()
        dispatcher.shutdown(timeout=1)


def test_different_agents_run_in_parallel(board, workspace) -> None:
    friday, _ = _assigned_agent(board, workspace, "Friday")
    shuri, _ = _assigned_agent(board, workspace, "Shuri")
    board.run_requests.enqueue(workspace.id, friday.id)
    board.run_requests.enqueue(workspace.id, shuri.id)
    generator = GatedGenerator("On it.")
    dispatcher = QueueDispatcher(board, generator, settings=DispatcherSettings(max_workers=2, invocation_timeout=0))

    try:
        report = dispatcher.tick_once()
        assert len(report.dispatched) == 2
        assert len(dispatcher.in_flight) == 2
        generator.gate.set()
        assert dispatcher.wait_idle(5)
        assert len(dispatcher.in_flight) == 0
    finally:
        generator.gate.set()
        dispatcher.shutdown(timeout=1)


def test_generator_failure_marks_request_failed(board, workspace) -> None:
    friday, _ = _assigned_agent(board, workspace, "Friday")
    request = board.run_requests.enqueue(workspace.id, friday.id)
    dispatcher = QueueDispatcher(board, ScriptedGenerator(GenerateError("backend down")))

    dispatcher.drain(timeout=5)
    dispatcher.shutdown(timeout=1)

    failed = board.run_requests.get(workspace.id, request.id)
    assert failed.status == "failed"
    assert failed.note == "backend down"
    assert len(dispatcher.in_flight) == 0


def test_invocation_timeout_fails_request_and_holds_key_until_worker_exits(board, workspace) -> None:
    friday, task = _assigned_agent(board, workspace, "Friday")
    request = board.run_requests.enqueue(workspace.id, friday.id)
    generator = GatedGenerator("late. STATUS: review")
    dispatcher = QueueDispatcher(board, generator, settings=DispatcherSettings(invocation_timeout=0.2))

    try:
        dispatcher.tick_once()
        assert dispatcher.wait_idle(5)
        failed = board.run_requests.get(workspace.id, request.id)
        assert failed.status == "failed"
        assert failed.note == "Invocation timed out after 0.2s"
        assert (workspace.id, friday.id) in dispatcher.in_flight

        generator.gate.set()
        assert _wait_for(lambda: (workspace.id, friday.id) not in dispatcher.in_flight)
        assert board.messages.list_for_task(workspace.id, task.id) == []
        assert board.tasks.get(workspace.id, task.id).status == "in_progress"
    finally:
        generator.gate.set()
        dispatcher.shutdown(timeout=1)


class CancelAwareGenerator:
    """First call blocks until cancelled; later calls answer immediately."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.cancel_seen: list[bool] = []

    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        with self._lock:
            first = self.max_active == 0
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if first:
                seen = cancel is not None and cancel.wait(1)
                self.cancel_seen.append(seen)
                return "Stale answer. STATUS: review"
            return "Fresh answer. STATUS: review"
        finally:
            with self._lock:
                self.active -= 1


def test_timed_out_invocation_is_cancelled_and_never_overlaps_the_next(board, workspace) -> None:
    friday, task = _assigned_agent(board, workspace, "Friday")
    first = board.run_requests.enqueue(workspace.id, friday.id)
    generator = CancelAwareGenerator()
    dispatcher = QueueDispatcher(board, generator, settings=DispatcherSettings(invocation_timeout=0.2))

    try:
        dispatcher.tick_once()
        assert dispatcher.wait_idle(5)
        assert board.run_requests.get(workspace.id, first.id).status == "failed"

        second = board.run_requests.enqueue(workspace.id, friday.id)
        dispatcher.tick_once()
        dispatcher.wait_idle(5)
        assert _wait_for(lambda: (workspace.id, friday.id) not in dispatcher.in_flight)
        dispatcher.drain(timeout=5)

        assert board.run_requests.get(workspace.id, second.id).status == "done"
        assert generator.max_active == 1
        assert generator.cancel_seen == [True]
        replies = board.messages.list_for_task(workspace.id, task.id)
        assert [m.content for m in replies] == ["Fresh answer. STATUS: review"]
        assert board.tasks.get(workspace.id, task.id).status == "review"
    finally:
        dispatcher.shutdown(timeout=1)


def test_request_for_missing_workspace_fails(board, workspace) -> None:
    orphan = board.container.run_requests.upsert(RunRequest(workspace_id="ws-gone", agent_id="agent-x"))
    dispatcher = QueueDispatcher(board, ScriptedGenerator())

    report = dispatcher.tick_once()
    dispatcher.shutdown(timeout=1)

    assert report.failed == [orphan.id]
    stored = board.container.run_requests.get(orphan.id)
    assert stored.status == "failed"
    assert stored.note == "Workspace not found"


def test_coordinator_requests_are_routed_to_interpreter(board, workspace) -> None:
    jarvis = board.agents.upsert(workspace.id, "Jarvis", level="COORD", status="active")
    request = board.run_requests.enqueue(workspace.id, jarvis.id)
    generator = ScriptedGenerator("Board looks quiet.\nACTION: CREATE | title=Write release notes | priority=high")
    dispatcher = QueueDispatcher(board, generator)

    dispatcher.drain(timeout=5)
    dispatcher.shutdown(timeout=1)

    assert board.run_requests.get(workspace.id, request.id).status == "done"
    [task] = board.tasks.list(workspace.id)
    assert task.title == "Write release notes"
    assert task.priority == "high"
    assert "ACTION: ASSIGN" in generator.prompts[0]


def test_workspace_scoped_dispatcher_ignores_other_workspaces(board, workspace) -> None:
    other = board.workspaces.create("Other")
    stranger = board.agents.upsert(other.id, "Stranger")
    foreign = board.run_requests.enqueue(other.id, stranger.id)
    dispatcher = QueueDispatcher(board, ScriptedGenerator(), workspace_id=workspace.id)

    reports = dispatcher.drain(timeout=5)
    dispatcher.shutdown(timeout=1)

    assert reports[0].dispatched == []
    assert board.run_requests.get(other.id, foreign.id).status == "pending"


def test_background_loop_processes_queue_until_shutdown(board, workspace) -> None:
    friday, task = _assigned_agent(board, workspace, "Friday")
    request = board.run_requests.enqueue(workspace.id, friday.id)
    dispatcher = QueueDispatcher(
        board,
        ScriptedGenerator("On it. STATUS: in_progress"),
        settings=DispatcherSettings(poll_interval=0.05),
    )

    dispatcher.start()
    try:
        _wait_for(lambda: board.run_requests.get(workspace.id, request.id).status == "done")
    finally:
        dispatcher.shutdown(timeout=2)

    assert board.run_requests.get(workspace.id, request.id).status == "done"
    assert board.tasks.get(workspace.id, task.id).status == "in_progress"
