from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from mission_control.board.context import Board
from mission_control.domain.models import Workspace
from mission_control.storage.container import Container


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedGenerator:
    """Return canned responses in order and remember every prompt."""

    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        with self._lock:
            self.prompts.append(prompt)
            if not self.responses:
                return "Nothing to report."
            response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def board(tmp_path: Path, clock: FakeClock) -> Board:
    return Board(Container(tmp_path, clock=clock))


@pytest.fixture
def workspace(board: Board) -> Workspace:
    return board.workspaces.ensure_default()
