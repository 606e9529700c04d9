"""Poll pending run requests and execute them on a bounded worker pool.

At most one invocation runs per (workspace, agent) key. Requests whose key is
busy stay pending for a later tick. Every finished invocation marks its request
`done` or `failed`. A timed-out invocation is cancelled and keeps its key until
its worker thread exits.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Hashable, Optional

from loguru import logger

from ..config import CoordinatorLimits, DispatcherSettings, ExecutorPolicy
from ..constants import COORDINATOR_LEVEL
from ..domain.models import RunRequest
from ..errors import GenerateTimeout, NotFoundError, PolicyViolation
from ..runtime.coordinator import CoordinatorInterpreter
from ..runtime.executor import AgentExecutor
from ..runtime.generate import Generator

if TYPE_CHECKING:
    from ..board.context import Board

InFlightKey = tuple[str, str]


class InFlightSet:
    """Thread-safe set of keys currently being executed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[Hashable] = set()

    def try_acquire(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def snapshot(self) -> list[Hashable]:
        with self._lock:
            return sorted(self._keys, key=str)


@dataclass
class TickReport:
    dispatched: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"dispatched": list(self.dispatched), "deferred": list(self.deferred), "failed": list(self.failed)}


class _Invocation:
    """Per-request cancel signal plus the bookkeeping for an abandoned worker."""

    def __init__(self, key: InFlightKey) -> None:
        self.key = key
        self.cancel = threading.Event()
        self.lock = threading.Lock()
        self.finished = False
        self.abandoned = False


class QueueDispatcher:
    def __init__(
        self,
        board: "Board",
        generator: Generator,
        *,
        settings: Optional[DispatcherSettings] = None,
        policy: Optional[ExecutorPolicy] = None,
        limits: Optional[CoordinatorLimits] = None,
        in_flight: Optional[InFlightSet] = None,
        workspace_id: Optional[str] = None,
    ) -> None:
        self.board = board
        self.settings = settings or DispatcherSettings()
        self.in_flight = in_flight if in_flight is not None else InFlightSet()
        self.workspace_id = workspace_id
        self.executor = AgentExecutor(board, generator, policy)
        self.coordinator = CoordinatorInterpreter(board, generator, limits)
        self._lock = threading.Lock()
        self._futures_lock = threading.Lock()
        self._futures: dict[str, Future] = {}
        self._pool: Optional[ThreadPoolExecutor] = None
        self._stop = threading.Event()
        self._cancel = threading.Event()
        self._invocations: set[_Invocation] = set()
        self._thread: Optional[threading.Thread] = None

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=max(1, self.settings.max_workers),
                    thread_name_prefix="dispatch",
                )
            return self._pool

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def _sweep_futures(self) -> None:
        """Drop finished futures and log errors that escaped `_process`."""
        with self._futures_lock:
            done_ids = [rid for rid, fut in self._futures.items() if fut.done()]
            for rid in done_ids:
                fut = self._futures.pop(rid)
                exc = fut.exception()
                if exc:
                    logger.opt(exception=exc).error("Run request {} raised unexpectedly", rid)

    def tick_once(self) -> TickReport:
        """Dispatch up to `batch_size` pending requests without waiting for them."""
        self._sweep_futures()
        report = TickReport()
        pending = self.board.run_requests.list_pending(self.workspace_id, limit=self.settings.batch_size)
        for request in pending:
            with self._futures_lock:
                if request.id in self._futures:
                    continue
            if self.board.workspaces.find(request.workspace_id) is None:
                self._finish(request, "failed", "Workspace not found")
                report.failed.append(request.id)
                continue
            key: InFlightKey = (request.workspace_id, request.agent_id)
            if not self.in_flight.try_acquire(key):
                logger.debug("Agent {} busy; deferring run request {}", request.agent_id, request.id)
                report.deferred.append(request.id)
                continue
            try:
                future = self._get_pool().submit(self._process, request, key)
            except RuntimeError:
                self.in_flight.release(key)
                raise
            with self._futures_lock:
                self._futures[request.id] = future
            report.dispatched.append(request.id)
        return report

    def _open_invocation(self, key: InFlightKey) -> _Invocation:
        invocation = _Invocation(key)
        with self._lock:
            if self._cancel.is_set():
                invocation.cancel.set()
            self._invocations.add(invocation)
        return invocation

    def _close_invocation(self, invocation: _Invocation) -> None:
        with self._lock:
            self._invocations.discard(invocation)
        self.in_flight.release(invocation.key)

    def _process(self, request: RunRequest, key: InFlightKey) -> None:
        invocation = self._open_invocation(key)
        try:
            self._invoke_with_timeout(request, invocation)
        except Exception as exc:
            logger.warning("Run request {} for agent {} failed: {}", request.id, request.agent_id, exc)
            self._finish(request, "failed", str(exc) or exc.__class__.__name__)
        else:
            self._finish(request, "done", f"ran at {self.board.container.now().isoformat()}")
        finally:
            # An abandoned worker still owns the key and releases it on exit.
            if not invocation.abandoned:
                self._close_invocation(invocation)

    def _invoke(self, request: RunRequest, cancel: threading.Event) -> Any:
        agent = self.board.agents.get(request.workspace_id, request.agent_id)
        if agent.level == COORDINATOR_LEVEL:
            return self.coordinator.run(request.workspace_id, agent.id, cancel=cancel)
        return self.executor.run(request.workspace_id, agent.id, force=self.settings.force, cancel=cancel)

    def _invoke_with_timeout(self, request: RunRequest, invocation: _Invocation) -> Any:
        timeout = self.settings.invocation_timeout
        if timeout <= 0:
            return self._invoke(request, invocation.cancel)
        result: dict[str, Any] = {}

        def _target() -> None:
            try:
                result["value"] = self._invoke(request, invocation.cancel)
            except BaseException as exc:  # re-raised in the dispatching thread
                result["error"] = exc
            finally:
                with invocation.lock:
                    invocation.finished = True
                    abandoned = invocation.abandoned
                if abandoned:
                    logger.info("Abandoned invocation for run request {} exited", request.id)
                    self._close_invocation(invocation)

        worker = threading.Thread(target=_target, name=f"invoke-{request.id}", daemon=True)
        worker.start()
        worker.join(timeout)
        with invocation.lock:
            if not invocation.finished:
                invocation.abandoned = True
        if invocation.abandoned:
            invocation.cancel.set()
            raise GenerateTimeout(f"Invocation timed out after {timeout:g}s")
        worker.join()
        if "error" in result:
            raise result["error"]
        return result.get("value")

    def _finish(self, request: RunRequest, status: str, note: str) -> None:
        try:
            self.board.run_requests.mark_done(request.id, status, note)
        except (PolicyViolation, NotFoundError) as exc:
            logger.warning("Could not close run request {}: {}", request.id, exc)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until all dispatched requests finished; False on timeout."""
        with self._futures_lock:
            inflight = list(self._futures.values())
        if not inflight:
            return True
        _, not_done = wait(inflight, timeout=timeout)
        self._sweep_futures()
        return not not_done

    def drain(self, timeout: Optional[float] = None, max_rounds: int = 10) -> list[TickReport]:
        """Tick and wait until nothing more is dispatched, at most `max_rounds` times."""
        reports: list[TickReport] = []
        for _ in range(max(1, max_rounds)):
            report = self.tick_once()
            reports.append(report)
            self.wait_idle(timeout)
            if not report.dispatched:
                break
        return reports

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run_forever(self) -> None:
        logger.info("Dispatcher polling every {:g}s", self.settings.poll_interval)
        while not self._stop.is_set():
            try:
                self.tick_once()
            except Exception:
                logger.exception("Dispatcher tick failed")
            self._stop.wait(self.settings.poll_interval)

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            self._cancel.clear()
            self._thread = threading.Thread(target=self.run_forever, daemon=True, name="dispatcher")
            self._thread.start()

    def shutdown(self, *, timeout: float = 10.0, cancel: bool = False) -> None:
        with self._lock:
            self._stop.set()
            thread = self._thread
        if cancel:
            with self._lock:
                self._cancel.set()
                for invocation in self._invocations:
                    invocation.cancel.set()
        if thread and thread.is_alive():
            thread.join(timeout=max(timeout, 0.0))

        with self._futures_lock:
            inflight = list(self._futures.values())
        if inflight and timeout > 0:
            wait(inflight, timeout=timeout)

        pool = self._pool
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=False)
            self._pool = None
        with self._futures_lock:
            self._futures.clear()
        self._thread = None
